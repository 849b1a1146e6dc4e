"""Key-value backends, board persistence, preferences and config IO."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
import json
import logging
import os
from pathlib import Path
import re
import tempfile
from typing import Any, Callable, Mapping, Protocol

import yaml

from . import dates
from .autosave import DEFAULT_AUTO_SAVE_DELAY
from .board import Board
from .models import StorageError, ValidationError

logger = logging.getLogger(__name__)

BOARD_DIR_NAME = ".taskboard"
BOARD_KEY = "kanban_board_data"
PREFERENCES_KEY = "kanban_user_preferences"
KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

DEFAULT_CONFIRM_DELETES = True


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> bool: ...

    def remove(self, key: str) -> bool: ...

    def is_available(self) -> bool: ...


class MemoryKeyValueStore:
    """In-process backend, mostly for tests and embedding."""

    def __init__(self, initial: Mapping[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> bool:
        self._data[key] = bytes(value)
        return True

    def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def is_available(self) -> bool:
        return True

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileKeyValueStore:
    """One file per key inside ``directory``; writes are atomic replaces."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not KEY_RE.fullmatch(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc

    def set(self, key: str, value: bytes) -> bool:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError as exc:
            raise StorageError(f"Unable to write {path}: {exc}") from exc
        return True

    def remove(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to remove {path}: {exc}") from exc
        return True

    def is_available(self) -> bool:
        marker = self.directory / "__storage_test__"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            marker.write_bytes(b"__storage_test__")
            marker.unlink()
        except OSError:
            return False
        return True


@dataclass(slots=True)
class Preferences:
    theme: str = "light"
    auto_save: bool = True
    auto_save_interval: int = 30000
    show_task_count: bool = True
    compact_mode: bool = False
    animations: bool = True
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "theme": data["theme"],
            "autoSave": data["auto_save"],
            "autoSaveInterval": data["auto_save_interval"],
            "showTaskCount": data["show_task_count"],
            "compactMode": data["compact_mode"],
            "animations": data["animations"],
            "updatedAt": data["updated_at"],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Preferences:
        """Lenient parse: unknown keys are ignored, mistyped values use defaults."""
        prefs = cls()
        keys = {
            "theme": "theme",
            "autoSave": "auto_save",
            "autoSaveInterval": "auto_save_interval",
            "showTaskCount": "show_task_count",
            "compactMode": "compact_mode",
            "animations": "animations",
            "updatedAt": "updated_at",
        }
        defaults = {f.name: getattr(prefs, f.name) for f in fields(cls)}
        for key, name in keys.items():
            if key not in data:
                continue
            value = data[key]
            expected = type(defaults[name]) if defaults[name] is not None else str
            if isinstance(value, bool) != (expected is bool) or not isinstance(value, expected):
                logger.warning("Ignoring preference %s with invalid value %r", key, value)
                continue
            setattr(prefs, name, value)
        return prefs

    def update(self, **changes: Any) -> Preferences:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        for name in changes:
            if name not in data:
                raise ValidationError(f"Unknown preference: {name}")
        data.update(changes)
        data["updated_at"] = dates.utc_now()
        return Preferences(**data)


def has_board_shape(data: Any) -> bool:
    return (
        isinstance(data, Mapping)
        and isinstance(data.get("tasks"), Mapping)
        and isinstance(data.get("columns"), Mapping)
        and isinstance(data.get("columnOrder"), list)
    )


class BoardPersistence:
    """Save and load board snapshots through an injected key-value store.

    Nothing here raises past the adapter: failed writes return False and
    unreadable data loads as None.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        clock: Callable[[], str] = dates.utc_now,
        board_key: str = BOARD_KEY,
        preferences_key: str = PREFERENCES_KEY,
    ) -> None:
        self.kv = kv
        self._clock = clock
        self.board_key = board_key
        self.preferences_key = preferences_key

    def _write(self, key: str, payload: Mapping[str, Any]) -> bool:
        try:
            raw = json.dumps(payload).encode("utf-8")
            ok = self.kv.set(key, raw)
        except (StorageError, TypeError, ValueError) as exc:
            logger.error("Error saving %s: %s", key, exc)
            return False
        if not ok:
            logger.error("Error saving %s: backend refused the write", key)
        return bool(ok)

    def _read(self, key: str) -> Any:
        try:
            raw = self.kv.get(key)
        except StorageError as exc:
            logger.error("Error loading %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as exc:
            logger.warning("Corrupt data under %s: %s", key, exc)
            return None

    def _remove(self, key: str) -> bool:
        try:
            return bool(self.kv.remove(key))
        except StorageError as exc:
            logger.error("Error removing %s: %s", key, exc)
            return False

    def save(self, board: Board) -> bool:
        payload = board.to_dict()
        payload["lastSaved"] = self._clock()
        ok = self._write(self.board_key, payload)
        if ok:
            logger.debug("Saved board (%d tasks)", len(board.tasks))
        return ok

    def load(self) -> Board | None:
        data = self._read(self.board_key)
        if data is None:
            return None
        if not has_board_shape(data):
            logger.warning("Invalid board data structure in storage")
            return None
        try:
            board = Board.from_dict(data)
        except ValidationError as exc:
            logger.warning("Stored board failed validation: %s", exc)
            return None
        logger.debug("Loaded board (%d tasks)", len(board.tasks))
        return board

    def last_saved(self) -> str | None:
        data = self._read(self.board_key)
        if isinstance(data, Mapping) and isinstance(data.get("lastSaved"), str):
            return data["lastSaved"]
        return None

    def remove_board(self) -> bool:
        return self._remove(self.board_key)

    def clear(self) -> bool:
        removed_board = self._remove(self.board_key)
        removed_prefs = self._remove(self.preferences_key)
        return removed_board and removed_prefs

    def load_preferences(self) -> Preferences:
        data = self._read(self.preferences_key)
        if not isinstance(data, Mapping):
            return Preferences()
        return Preferences.from_dict(data)

    def save_preferences(self, preferences: Preferences) -> bool:
        return self._write(self.preferences_key, preferences.to_dict())

    def _size(self, key: str) -> int:
        try:
            raw = self.kv.get(key)
        except StorageError:
            return 0
        return len(raw) if raw is not None else 0

    def storage_info(self) -> dict[str, Any]:
        if not self.kv.is_available():
            return {"available": False}
        board_size = self._size(self.board_key)
        prefs_size = self._size(self.preferences_key)
        return {
            "available": True,
            "boardDataSize": board_size,
            "preferencesSize": prefs_size,
            "totalSize": board_size + prefs_size,
            "lastSaved": self.last_saved(),
        }


# -------------------- board root discovery --------------------


def discover_board_roots(start: Path) -> list[Path]:
    start = start.resolve()
    roots: list[Path] = []
    for candidate in [start, *start.parents]:
        board_dir = candidate / BOARD_DIR_NAME
        if board_dir.is_dir():
            roots.append(board_dir)
    return roots


def choose_board_root(start: Path) -> tuple[Path | None, bool]:
    roots = discover_board_roots(start)
    if not roots:
        return None, False
    return roots[0], len(roots) > 1


def default_init_root(start: Path) -> Path:
    return start.resolve() / BOARD_DIR_NAME


# -------------------- config --------------------


def config_path(board_root: Path) -> Path:
    return board_root / "config.yaml"


def default_config() -> dict[str, Any]:
    return {
        "settings": {
            "confirm_deletes": DEFAULT_CONFIRM_DELETES,
            "auto_save_delay": DEFAULT_AUTO_SAVE_DELAY,
        }
    }


def write_default_config_if_missing(board_root: Path) -> bool:
    path = config_path(board_root)
    if path.exists():
        return False
    board_root.mkdir(parents=True, exist_ok=True)
    payload = yaml.safe_dump(default_config(), sort_keys=False, default_flow_style=False)
    path.write_text(payload, encoding="utf-8")
    return True


def read_config(board_root: Path, warn: Callable[[str], None] | None = None) -> dict[str, Any]:
    path = config_path(board_root)
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        if warn is not None:
            warn(f"Unable to parse config at {path}. Falling back to defaults.")
        return {}
    if not isinstance(payload, dict):
        if warn is not None:
            warn(f"Invalid config format at {path}. Falling back to defaults.")
        return {}
    return payload


def _settings(board_root: Path, warn: Callable[[str], None] | None) -> dict[str, Any]:
    data = read_config(board_root, warn=warn)
    for key in data.keys():
        if key != "settings" and warn is not None:
            warn(f"Unsupported config key '{key}' in {config_path(board_root)}. Ignoring.")

    settings = data.get("settings", {})
    if not isinstance(settings, dict):
        if warn is not None:
            warn(f"Invalid settings section in {config_path(board_root)}. Using defaults.")
        return {}

    supported = set(default_config()["settings"])
    for key in settings.keys():
        if key not in supported and warn is not None:
            warn(f"Unsupported settings key '{key}' in {config_path(board_root)}. Ignoring.")
    return settings


def resolve_confirm_deletes(board_root: Path, warn: Callable[[str], None] | None = None) -> bool:
    value = _settings(board_root, warn).get("confirm_deletes")
    if value is None:
        return DEFAULT_CONFIRM_DELETES
    if not isinstance(value, bool):
        if warn is not None:
            warn(
                f"Invalid settings.confirm_deletes in {config_path(board_root)}. "
                f"Using default '{DEFAULT_CONFIRM_DELETES}'."
            )
        return DEFAULT_CONFIRM_DELETES
    return value


def resolve_auto_save_delay(board_root: Path, warn: Callable[[str], None] | None = None) -> float:
    value = _settings(board_root, warn).get("auto_save_delay")
    if value is None:
        return DEFAULT_AUTO_SAVE_DELAY
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        if warn is not None:
            warn(
                f"Invalid settings.auto_save_delay in {config_path(board_root)}. "
                f"Using default '{DEFAULT_AUTO_SAVE_DELAY}'."
            )
        return DEFAULT_AUTO_SAVE_DELAY
    return float(value)

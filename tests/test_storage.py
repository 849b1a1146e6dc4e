from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml

from taskboard import storage
from taskboard.board import BoardStore
from taskboard.models import StorageError, ValidationError


class FailingKeyValueStore(storage.MemoryKeyValueStore):
    def set(self, key: str, value: bytes) -> bool:
        raise StorageError("quota exceeded")


class RefusingKeyValueStore(storage.MemoryKeyValueStore):
    def set(self, key: str, value: bytes) -> bool:
        return False


def _write_config(board_root: Path, content: str) -> None:
    board_root.mkdir(parents=True, exist_ok=True)
    (board_root / "config.yaml").write_text(content, encoding="utf-8")


def _store_with_task() -> BoardStore:
    store = BoardStore()
    column = store.add_column({"title": "To Do"})
    store.add_task(column, {"title": "Persist me", "priority": "high"})
    return store


def test_save_and_load_round_trip_in_memory() -> None:
    store = _store_with_task()
    persistence = storage.BoardPersistence(
        storage.MemoryKeyValueStore(),
        clock=lambda: "2026-03-01T09:00:00.000Z",
    )
    assert persistence.save(store.board) is True
    loaded = persistence.load()
    assert loaded == store.board
    assert persistence.last_saved() == "2026-03-01T09:00:00.000Z"


def test_saved_payload_uses_fixed_key_and_camel_case(tmp_path: Path) -> None:
    store = _store_with_task()
    persistence = storage.BoardPersistence(storage.FileKeyValueStore(tmp_path))
    assert persistence.save(store.board)
    payload = json.loads((tmp_path / "kanban_board_data.json").read_text(encoding="utf-8"))
    assert set(payload) == {"tasks", "columns", "columnOrder", "lastModified", "lastSaved"}
    column = next(iter(payload["columns"].values()))
    assert "taskIds" in column
    assert persistence.load() == store.board


def test_load_missing_returns_none(tmp_path: Path) -> None:
    persistence = storage.BoardPersistence(storage.FileKeyValueStore(tmp_path / "nowhere"))
    assert persistence.load() is None
    assert persistence.last_saved() is None


@pytest.mark.parametrize(
    "raw",
    [
        b"{not json",
        b"\xff\xfe",
        b"[]",
        b'{"tasks": {}, "columns": {}}',
        b'{"tasks": {}, "columns": {}, "columnOrder": ["column-id-ghost"]}',
        b"[" * 100000,
    ],
)
def test_load_unusable_data_returns_none(raw: bytes, caplog: pytest.LogCaptureFixture) -> None:
    kv = storage.MemoryKeyValueStore({storage.BOARD_KEY: raw})
    with caplog.at_level(logging.WARNING, logger="taskboard.storage"):
        assert storage.BoardPersistence(kv).load() is None
    assert caplog.records


def test_failing_backend_reports_false(caplog: pytest.LogCaptureFixture) -> None:
    store = _store_with_task()
    with caplog.at_level(logging.ERROR, logger="taskboard.storage"):
        assert storage.BoardPersistence(FailingKeyValueStore()).save(store.board) is False
    assert "quota exceeded" in caplog.text
    assert storage.BoardPersistence(RefusingKeyValueStore()).save(store.board) is False


def test_clear_removes_board_and_preferences() -> None:
    kv = storage.MemoryKeyValueStore()
    persistence = storage.BoardPersistence(kv)
    persistence.save(_store_with_task().board)
    persistence.save_preferences(storage.Preferences(theme="dark"))
    assert kv.keys() == [storage.BOARD_KEY, storage.PREFERENCES_KEY]
    assert persistence.clear() is True
    assert kv.keys() == []


def test_storage_info_reports_sizes() -> None:
    persistence = storage.BoardPersistence(storage.MemoryKeyValueStore())
    persistence.save(_store_with_task().board)
    info = persistence.storage_info()
    assert info["available"] is True
    assert info["boardDataSize"] > 0
    assert info["preferencesSize"] == 0
    assert info["totalSize"] == info["boardDataSize"]
    assert info["lastSaved"] is not None


def test_file_store_writes_atomically(tmp_path: Path) -> None:
    kv = storage.FileKeyValueStore(tmp_path / "board")
    assert kv.is_available()
    assert kv.set("sample", b"one")
    assert kv.set("sample", b"two")
    assert kv.get("sample") == b"two"
    assert sorted(p.name for p in (tmp_path / "board").iterdir()) == ["sample.json"]
    assert kv.remove("sample")
    assert kv.remove("sample")
    assert kv.get("sample") is None


def test_file_store_rejects_path_like_keys(tmp_path: Path) -> None:
    with pytest.raises(StorageError):
        storage.FileKeyValueStore(tmp_path).get("../escape")


def test_preferences_defaults_and_lenient_parse() -> None:
    prefs = storage.Preferences.from_dict(
        {"theme": "dark", "autoSave": "yes", "autoSaveInterval": True, "compactMode": True, "other": 1}
    )
    assert prefs.theme == "dark"
    assert prefs.auto_save is True
    assert prefs.auto_save_interval == 30000
    assert prefs.compact_mode is True
    assert prefs.show_task_count is True


def test_preferences_update_round_trips_through_persistence() -> None:
    persistence = storage.BoardPersistence(storage.MemoryKeyValueStore())
    assert persistence.load_preferences() == storage.Preferences()
    prefs = storage.Preferences().update(compact_mode=True, show_task_count=False)
    assert prefs.updated_at is not None
    assert persistence.save_preferences(prefs)
    assert persistence.load_preferences() == prefs


def test_preferences_update_rejects_unknown_names() -> None:
    with pytest.raises(ValidationError, match="Unknown preference: colour"):
        storage.Preferences().update(colour="red")


def test_discovery_prefers_nearest_root(tmp_path: Path) -> None:
    outer = tmp_path / ".taskboard"
    inner = tmp_path / "project" / ".taskboard"
    outer.mkdir()
    inner.mkdir(parents=True)
    nested = tmp_path / "project" / "src"
    nested.mkdir()

    root, multiple = storage.choose_board_root(nested)
    assert root == inner.resolve()
    assert multiple is True
    assert storage.choose_board_root(tmp_path / "project" / "..")[0] == outer.resolve()
    assert storage.default_init_root(nested) == nested.resolve() / ".taskboard"


def test_write_default_config_only_once(tmp_path: Path) -> None:
    root = tmp_path / ".taskboard"
    assert storage.write_default_config_if_missing(root) is True
    assert storage.write_default_config_if_missing(root) is False
    cfg = yaml.safe_load((root / "config.yaml").read_text(encoding="utf-8"))
    assert cfg == {"settings": {"confirm_deletes": True, "auto_save_delay": 1.0}}


def test_config_defaults_when_missing(tmp_path: Path) -> None:
    root = tmp_path / ".taskboard"
    warnings: list[str] = []
    assert storage.resolve_confirm_deletes(root, warn=warnings.append) is True
    assert storage.resolve_auto_save_delay(root, warn=warnings.append) == 1.0
    assert warnings == []


def test_config_reads_custom_values(tmp_path: Path) -> None:
    root = tmp_path / ".taskboard"
    _write_config(root, "settings:\n  confirm_deletes: false\n  auto_save_delay: 2.5\n")
    warnings: list[str] = []
    assert storage.resolve_confirm_deletes(root, warn=warnings.append) is False
    assert storage.resolve_auto_save_delay(root, warn=warnings.append) == 2.5
    assert warnings == []


def test_config_invalid_values_warn_and_fall_back(tmp_path: Path) -> None:
    root = tmp_path / ".taskboard"
    _write_config(
        root,
        "theme: dark\nsettings:\n  confirm_deletes: maybe\n  auto_save_delay: -1\n  extra: 1\n",
    )
    warnings: list[str] = []
    assert storage.resolve_confirm_deletes(root, warn=warnings.append) is True
    assert any("Unsupported config key 'theme'" in msg for msg in warnings)
    assert any("Unsupported settings key 'extra'" in msg for msg in warnings)
    assert any("Invalid settings.confirm_deletes" in msg for msg in warnings)

    warnings.clear()
    assert storage.resolve_auto_save_delay(root, warn=warnings.append) == 1.0
    assert any("Invalid settings.auto_save_delay" in msg for msg in warnings)


def test_unparseable_config_warns(tmp_path: Path) -> None:
    root = tmp_path / ".taskboard"
    _write_config(root, "settings: [unclosed\n")
    warnings: list[str] = []
    assert storage.read_config(root, warn=warnings.append) == {}
    assert warnings and "Unable to parse config" in warnings[0]

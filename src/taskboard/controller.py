"""Top-level owner of the board, its persistence and its auto-save timer."""

from __future__ import annotations

from dataclasses import replace
import logging
import threading
from typing import Callable

from . import codec, dates
from .autosave import DEFAULT_AUTO_SAVE_DELAY, AutoSaveScheduler, TimerFactory
from .board import Board, BoardStore
from .codec import ImportResult
from .drag import DragTracker
from .models import ValidationError
from .storage import BoardPersistence, KeyValueStore, Preferences

logger = logging.getLogger(__name__)


class BoardController:
    """Wire the store, persistence, auto-save and drag tracking together.

    The persisted board is loaded on construction; anything unreadable
    starts an empty board. Each successful store mutation schedules a
    debounced save of the latest snapshot.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        auto_save: bool = True,
        auto_save_delay: float = DEFAULT_AUTO_SAVE_DELAY,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], str] = dates.utc_now,
    ) -> None:
        self._clock = clock
        self.persistence = BoardPersistence(kv, clock=clock)
        loaded = self.persistence.load()
        if loaded is None:
            logger.debug("No stored board; starting empty")
        self.store = BoardStore(loaded, clock=clock)
        self.preferences = self.persistence.load_preferences()
        self.drag = DragTracker(self.store)
        # Serializes snapshot writes against clear_board; a save queued before
        # the latest clear carries an older generation and is dropped.
        self._save_lock = threading.Lock()
        self._clear_generation = 0
        self._pending_generation = 0
        self.auto_save = AutoSaveScheduler(
            self._auto_save,
            auto_save_delay,
            timer_factory=timer_factory,
        )
        if not (auto_save and self.preferences.auto_save):
            self.auto_save.disable()
        self._unsubscribe = self.store.subscribe(self._on_change)

    @property
    def board(self) -> Board:
        return self.store.board

    def _on_change(self, board: Board) -> None:
        self._pending_generation = self._clear_generation
        self.auto_save.schedule()

    def _auto_save(self) -> bool:
        with self._save_lock:
            if self._pending_generation != self._clear_generation:
                logger.debug("Dropping auto-save queued before the board was cleared")
                return False
            return self.persistence.save(self.store.board)

    def save(self) -> bool:
        """Write the current snapshot now, superseding any pending auto-save."""
        self.auto_save.cancel()
        with self._save_lock:
            return self.persistence.save(self.store.board)

    def export_json(self) -> str:
        return codec.export_json(self.store.board, now=self._clock())

    def import_json(self, text: str | bytes) -> ImportResult:
        """Replace the whole board from export text, or leave it untouched."""
        result = codec.import_board(text)
        if not result.success:
            return result
        try:
            self.store.import_snapshot(result.data or {})
        except ValidationError as exc:
            logger.warning("Import rejected: %s", exc)
            return replace(result, success=False, data=None, error=str(exc))
        logger.info("Imported board (%d tasks)", len(self.store.board.tasks))
        return result

    def clear_board(self) -> bool:
        """Empty the board and drop the stored snapshot."""
        with self._save_lock:
            self.store.clear()
            self.auto_save.cancel()
            self.drag.cancel()
            self._clear_generation += 1
            return self.persistence.remove_board()

    def update_preferences(self, **changes) -> Preferences:
        self.preferences = self.preferences.update(**changes)
        self.persistence.save_preferences(self.preferences)
        if "auto_save" in changes:
            if self.preferences.auto_save:
                self.auto_save.enable()
            else:
                self.auto_save.disable()
        return self.preferences

    def close(self) -> None:
        self.auto_save.close()
        self.drag.cancel()
        self._unsubscribe()

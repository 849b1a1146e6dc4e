"""Drag-and-drop gesture tracking.

The tracker holds transient pointer state only. It is never persisted and
is discarded on drop, cancel or teardown.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Optional

from .board import Board, BoardStore
from .models import NotFoundError

logger = logging.getLogger(__name__)

DRAG_TASK = "task"
DRAG_COLUMN = "column"
DRAG_TYPES = (DRAG_TASK, DRAG_COLUMN)


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    OVER_TARGET = "over_target"


@dataclass(frozen=True)
class DragState:
    phase: DragPhase = DragPhase.IDLE
    item_id: Optional[str] = None
    item_type: Optional[str] = None
    target_id: Optional[str] = None


IDLE = DragState()

DragGuard = Callable[[str, str], bool]
DropGuard = Callable[[str, str, str], bool]
InvalidDropHandler = Callable[[str, str, str], None]


class DragTracker:
    """State machine translating drag gestures into store moves.

    Idle -> Dragging on start; Dragging -> OverTarget on enter; OverTarget ->
    Dragging on leave of the current target; any state -> Idle on drop or
    cancel.
    """

    def __init__(
        self,
        store: BoardStore,
        *,
        can_drag: DragGuard | None = None,
        can_drop: DropGuard | None = None,
        on_invalid_drop: InvalidDropHandler | None = None,
    ) -> None:
        self.store = store
        self._can_drag = can_drag
        self._can_drop = can_drop
        self._on_invalid_drop = on_invalid_drop
        self._state = IDLE

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def phase(self) -> DragPhase:
        return self._state.phase

    def is_dragging(self, item_id: str) -> bool:
        return self._state.phase is not DragPhase.IDLE and self._state.item_id == item_id

    def is_dragged_over(self, target_id: str) -> bool:
        return self._state.phase is DragPhase.OVER_TARGET and self._state.target_id == target_id

    def start(self, item_id: str, item_type: str = DRAG_TASK) -> DragState:
        if item_type not in DRAG_TYPES:
            raise ValueError(f"Unknown drag type: {item_type}")
        if self._can_drag is not None and not self._can_drag(item_id, item_type):
            return self._state
        self._state = DragState(DragPhase.DRAGGING, item_id, item_type)
        return self._state

    def enter(self, target_id: str) -> DragState:
        if self._state.phase is DragPhase.IDLE:
            return self._state
        self._state = DragState(
            DragPhase.OVER_TARGET,
            self._state.item_id,
            self._state.item_type,
            target_id,
        )
        return self._state

    def leave(self, target_id: str | None = None) -> DragState:
        if self._state.phase is not DragPhase.OVER_TARGET:
            return self._state
        if target_id is not None and target_id != self._state.target_id:
            return self._state
        self._state = DragState(DragPhase.DRAGGING, self._state.item_id, self._state.item_type)
        return self._state

    def cancel(self) -> DragState:
        self._state = IDLE
        return self._state

    def drop(self, index: int | None = None) -> Board | None:
        """Finish the gesture, applying the move when a target is active.

        With ``index`` and a task dropped on its own column, the task is
        repositioned inside that column instead of moved to the tail.
        Returns the resulting snapshot, or None when nothing was applied.
        """
        state = self._state
        self._state = IDLE
        if state.phase is not DragPhase.OVER_TARGET:
            return None

        item_id, item_type, target_id = state.item_id, state.item_type, state.target_id
        if self._can_drop is not None and not self._can_drop(item_id, target_id, item_type):
            logger.debug("Rejected drop of %s %s on %s", item_type, item_id, target_id)
            if self._on_invalid_drop is not None:
                self._on_invalid_drop(item_id, target_id, item_type)
            return None

        if item_type == DRAG_COLUMN:
            return self._drop_column(item_id, target_id)
        if index is not None and self.store.find_task_column(item_id) == target_id:
            return self.store.move_task_within_column(target_id, item_id, index)
        return self.store.move_task(item_id, target_id)

    def _drop_column(self, column_id: str, target_id: str) -> Board:
        order = list(self.store.board.column_order)
        for cid in (column_id, target_id):
            if cid not in order:
                raise NotFoundError(f"Column {cid} not found")
        if column_id == target_id:
            return self.store.board
        target_index = order.index(target_id)
        order.remove(column_id)
        order.insert(target_index, column_id)
        return self.store.reorder_columns(order)

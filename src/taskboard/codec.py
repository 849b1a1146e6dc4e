"""Versioned JSON envelope for exporting and importing boards."""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
import json
import logging
from typing import Any, Mapping

from . import dates
from .board import Board
from .models import ImportFormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


@dataclass(frozen=True)
class ImportResult:
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    version: str | None = None
    exported_at: str | None = None

    @classmethod
    def failure(cls, error: str) -> ImportResult:
        return cls(success=False, error=error)


def export_board(board: Board, *, now: str | None = None) -> dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "exportedAt": now or dates.utc_now(),
        "data": board.to_dict(),
    }


def export_json(board: Board, *, now: str | None = None) -> str:
    return json.dumps(export_board(board, now=now), indent=2)


def default_export_filename(now: dt.date | None = None) -> str:
    day = now or dates.today()
    return f"kanban-board-{day.isoformat()}.json"


def parse_envelope(text: str | bytes) -> dict[str, Any]:
    """Parse and structurally check an export envelope.

    Raises ImportFormatError when the text is not JSON or lacks a ``data``
    object holding both ``tasks`` and ``columns``.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ImportFormatError(f"Invalid JSON format: {exc}") from exc

    data = payload.get("data") if isinstance(payload, Mapping) else None
    if (
        not isinstance(data, Mapping)
        or not isinstance(data.get("tasks"), Mapping)
        or not isinstance(data.get("columns"), Mapping)
    ):
        raise ImportFormatError("Invalid file format: Missing required data structure")
    return payload


def import_board(text: str | bytes) -> ImportResult:
    """Parse an export file; never raises, failures come back as a result."""
    try:
        payload = parse_envelope(text)
    except ImportFormatError as exc:
        logger.warning("Import rejected: %s", exc)
        return ImportResult.failure(str(exc))

    version = payload.get("version")
    exported_at = payload.get("exportedAt")
    if version is not None and version != FORMAT_VERSION:
        logger.info("Importing export format version %s", version)
    return ImportResult(
        success=True,
        data=dict(payload["data"]),
        version=version if isinstance(version, str) else None,
        exported_at=exported_at if isinstance(exported_at, str) else None,
    )

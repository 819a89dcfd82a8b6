"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from histctl.engine.history import HistoryManager


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (journal rows, memento rows)."""
    return datetime.now(UTC).isoformat()


def stack_depths(history: HistoryManager) -> dict[str, int]:
    """Undo/redo depths for inclusion in result payloads."""
    return {
        "undo_depth": len(history.undo_stack),
        "redo_depth": len(history.redo_stack),
    }


def parse_assignments(pairs: tuple[str, ...] | list[str]) -> dict[str, Any]:
    """Turn ``key=value`` strings into a payload dict.

    Values that look like integers become ints; everything else stays a
    string.

    Examples:
        >>> parse_assignments(["amount=100", "memo=rent"])
        {'amount': 100, 'memo': 'rent'}
        >>> parse_assignments(["position=-1"])
        {'position': -1}
    """
    payload: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            msg = f"Expected key=value, got {pair!r}"
            raise ValueError(msg)
        try:
            payload[key] = int(raw)
        except ValueError:
            payload[key] = raw
    return payload

"""Ordered approver rows.

Every row carries a generated ``row_id`` that never leaves the process.
It gives transient per-row state a stable key while ``order`` keeps
changing under inserts, removals and moves.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from approvers.mode import ModeController

logger = logging.getLogger(__name__)


def _new_row_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Row:
    """One approver slot: 1-based rank plus a directory key."""

    order: int
    approver: str = ""
    row_id: str = field(default_factory=_new_row_id, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"order": self.order, "approver": self.approver}

    @classmethod
    def from_dict(cls, data: Any, order: int) -> Row:
        """Coerce one persisted element; anything malformed becomes an empty row."""
        approver = ""
        if isinstance(data, Mapping):
            raw = data.get("approver", "")
            if isinstance(raw, str):
                approver = raw.strip()
        return cls(order=order, approver=approver)


class RowCollection:
    """Bounded, always-renumbered list of rows.

    Structural operations are no-ops while the mode controller reports
    read-only. Bounds apply only in editable mode.
    """

    def __init__(
        self,
        mode: ModeController,
        *,
        min_rows: int = 1,
        max_rows: int = 10,
    ) -> None:
        self._mode = mode
        self.min_rows = min_rows
        self.max_rows = max_rows
        self._rows: list[Row] = []

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(list(self._rows))

    def __getitem__(self, index: int) -> Row:
        return self._rows[index]

    @property
    def rows(self) -> tuple[Row, ...]:
        return tuple(self._rows)

    @property
    def row_ids(self) -> list[str]:
        return [row.row_id for row in self._rows]

    @property
    def editable(self) -> bool:
        return not self._mode.is_read_only()

    def index_of(self, row_id: str) -> int | None:
        for i, row in enumerate(self._rows):
            if row.row_id == row_id:
                return i
        return None

    def in_bounds(self, index: int) -> bool:
        return 0 <= index < len(self._rows)

    def to_list(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self._rows]

    def replace(self, rows: list[Row]) -> None:
        """Install a freshly loaded row list. Not gated by mode."""
        self._rows = list(rows)
        self.renumber()

    def renumber(self) -> None:
        for i, row in enumerate(self._rows):
            row.order = i + 1

    def add(self) -> Row | None:
        if not self.editable:
            logger.debug("Read-only, ignoring add row")
            return None
        if len(self._rows) >= self.max_rows:
            logger.debug("Cannot add row, max_rows reached: %d", self.max_rows)
            return None
        row = Row(order=len(self._rows) + 1)
        self._rows.append(row)
        logger.debug("Added row %s, count=%d", row.row_id, len(self._rows))
        return row

    def remove(self, index: int) -> Row | None:
        """Delete the row at ``index``, renumber, then backfill to min_rows."""
        if not self.editable:
            logger.debug("Read-only, ignoring remove row %d", index)
            return None
        if not self.in_bounds(index):
            logger.debug("Remove index out of range: %d", index)
            return None
        removed = self._rows.pop(index)
        self.renumber()
        self.ensure_min_rows()
        logger.debug("Removed row %d (%s), count=%d", index, removed.row_id, len(self._rows))
        return removed

    def move_up(self, index: int) -> bool:
        if not self.editable or index <= 0 or index >= len(self._rows):
            return False
        return self._swap(index - 1, index)

    def move_down(self, index: int) -> bool:
        if not self.editable or index < 0 or index >= len(self._rows) - 1:
            return False
        return self._swap(index, index + 1)

    def _swap(self, a: int, b: int) -> bool:
        self._rows[a], self._rows[b] = self._rows[b], self._rows[a]
        self.renumber()
        logger.debug("Swapped rows %d and %d", a, b)
        return True

    def ensure_min_rows(self) -> list[Row]:
        """Append empty rows until min_rows is met. Returns what was added."""
        if not self.editable:
            return []
        added: list[Row] = []
        while len(self._rows) < self.min_rows:
            row = Row(order=len(self._rows) + 1)
            self._rows.append(row)
            added.append(row)
        if added:
            logger.debug("Backfilled %d row(s) to min_rows=%d", len(added), self.min_rows)
        return added

    def set_approver(self, index: int, key: str) -> bool:
        if not self.editable or not self.in_bounds(index):
            return False
        self._rows[index].approver = key
        return True

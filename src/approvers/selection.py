"""Transient per-row picker state.

Keyed by ``Row.row_id`` rather than by position, so moving or removing
rows never requires a remap: state travels with its row.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from approvers.directory.client import Person


@dataclass
class RowState:
    """What the picker for one row is showing."""

    term: str = ""
    selection: Person | None = None
    suggestions: list[Person] = field(default_factory=list)
    error: str = ""


class SelectionStore:
    def __init__(self) -> None:
        self._states: dict[str, RowState] = {}

    def __contains__(self, row_id: str) -> bool:
        return row_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def get(self, row_id: str) -> RowState:
        """Return the row's state, creating an empty one on first access."""
        state = self._states.get(row_id)
        if state is None:
            state = RowState()
            self._states[row_id] = state
        return state

    def peek(self, row_id: str) -> RowState | None:
        return self._states.get(row_id)

    def set_term(self, row_id: str, term: str) -> None:
        self.get(row_id).term = term

    def select(self, row_id: str, person: Person | None, *, term: str | None = None) -> None:
        state = self.get(row_id)
        state.selection = person
        if term is not None:
            state.term = term
        elif person is not None:
            state.term = person.display_name

    def set_suggestions(self, row_id: str, suggestions: Iterable[Person]) -> None:
        state = self.get(row_id)
        state.suggestions = list(suggestions)
        state.error = ""

    def clear_suggestions(self, row_id: str) -> None:
        state = self._states.get(row_id)
        if state is not None:
            state.suggestions = []

    def set_error(self, row_id: str, message: str) -> None:
        state = self.get(row_id)
        state.error = message
        state.suggestions = []

    def discard(self, row_id: str) -> None:
        self._states.pop(row_id, None)

    def prune(self, live_ids: Iterable[str]) -> None:
        """Drop state for rows that no longer exist."""
        keep = set(live_ids)
        for row_id in [r for r in self._states if r not in keep]:
            del self._states[row_id]

    def clear(self) -> None:
        self._states.clear()

"""The approvers repeater component.

Wires the row collection, per-row picker state, debounced search and
persistence into the operations a host form drives: load a stored
value, type into a row, pick a person, and add/remove/reorder rows.

Row and picker state are mutated together inside each operation, and
every structural edit ends with a single save, so the host never sees
a value that disagrees with what the rows display.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from approvers.config import RepeaterConfig
from approvers.directory.client import DirectoryClient, Person
from approvers.events.bus import EventBus, Unsubscribe, ValueHandler
from approvers.events.types import VALUE_CHANGE
from approvers.exceptions import ApproversError, ConfigurationError
from approvers.mode import ModeController
from approvers.persistence import (
    EMPTY_VALUE,
    MirrorSink,
    PersistenceGateway,
    parse_value,
)
from approvers.rows import Row, RowCollection
from approvers.search import SearchController
from approvers.selection import RowState, SelectionStore

logger = logging.getLogger(__name__)

LOAD_FAILURE_MESSAGE = "Unable to load details for some approvers."
NO_APPROVER_TEXT = "No approver selected"


@dataclass(frozen=True)
class DisplayRow:
    """What a read-only rendering of one row shows."""

    order: int
    name: str
    title: str


class ApproversRepeater:
    def __init__(
        self,
        config: RepeaterConfig,
        mode: ModeController,
        directory: DirectoryClient,
        *,
        bus: EventBus | None = None,
        mirror_sink: MirrorSink | None = None,
        source: str = "approvers",
    ) -> None:
        self.config = config
        self.mode = mode
        self.bus = bus or EventBus()
        self._directory = directory
        self._rows = RowCollection(
            mode,
            min_rows=config.rows.min_rows,
            max_rows=config.rows.max_rows,
        )
        self._store = SelectionStore()
        self._search = SearchController(directory, self._store, settings=config.directory)
        self._gateway = PersistenceGateway(
            mode,
            self.bus,
            source=source,
            mirror=config.mirror,
            mirror_sink=mirror_sink,
        )
        self.active_index: int | None = None
        self.error_message = ""

    # --- Read model ---

    @property
    def rows(self) -> tuple[Row, ...]:
        return self._rows.rows

    @property
    def value(self) -> str:
        return self._gateway.value

    @property
    def read_only(self) -> bool:
        return self.mode.is_read_only()

    @property
    def loading(self) -> bool:
        return self._search.loading

    @property
    def directory(self) -> DirectoryClient:
        return self._directory

    @property
    def search(self) -> SearchController:
        return self._search

    @property
    def can_add(self) -> bool:
        return not self.read_only and len(self._rows) < self._rows.max_rows

    def can_move_up(self, index: int) -> bool:
        return not self.read_only and 0 < index < len(self._rows)

    def can_move_down(self, index: int) -> bool:
        return not self.read_only and 0 <= index < len(self._rows) - 1

    def state_at(self, index: int) -> RowState:
        return self._store.get(self._rows[index].row_id)

    def helper_text(self) -> str:
        if self.loading:
            return "Searching…"
        index = self.active_index
        if index is None or not self._rows.in_bounds(index):
            return ""
        state = self.state_at(index)
        if not state.term:
            return ""
        if len(state.term) < self._search.min_chars:
            return f"Type at least {self._search.min_chars} characters to search"
        if self._search.is_pending(self._rows[index].row_id):
            return ""
        return "" if state.suggestions or state.error else "No matches"

    def display_rows(self) -> list[DisplayRow]:
        result = []
        for row in self._rows:
            selection = self._store.get(row.row_id).selection
            name = (selection.display_name if selection else "") or row.approver
            title = (selection.email if selection else "") or row.approver
            result.append(
                DisplayRow(order=row.order, name=name or NO_APPROVER_TEXT, title=title or "")
            )
        return result

    def on_value_change(
        self, handler: ValueHandler, *, event_type: str = VALUE_CHANGE
    ) -> Unsubscribe:
        """Call ``handler`` with every ``ValueChanged`` the host should see."""
        return self.bus.subscribe(event_type, handler)

    # --- Loading ---

    async def load(self, value: str | None, *, hydrate: bool = True) -> None:
        """Adopt a stored value and hydrate each approver from the directory.

        Keys are resolved one at a time in row order. With ``hydrate=False``
        every row shows its raw key and the directory is not contacted.
        """
        self._search.cancel_all()
        self._store.clear()
        self.active_index = None
        self.error_message = ""
        self._gateway.reset(value if value is not None else EMPTY_VALUE)
        self._rows.replace(parse_value(value))
        if not self.read_only:
            self.ensure_min_rows()

        directory_available = hydrate
        for row in list(self._rows):
            if not row.approver:
                continue
            key = row.approver
            person: Person | None = None
            if directory_available:
                try:
                    person = await self._directory.resolve(key)
                except ConfigurationError as e:
                    logger.error("Directory unavailable: %s", e)
                    self.error_message = str(e)
                    directory_available = False
                except ApproversError as e:
                    logger.warning("Failed to fetch user details for %s: %s", key, e)
                    self.error_message = LOAD_FAILURE_MESSAGE
                except Exception as e:
                    logger.warning("Unexpected error resolving %s: %s", key, e)
                    self.error_message = LOAD_FAILURE_MESSAGE
            # The row may have been removed while we awaited.
            if self._rows.index_of(row.row_id) is None:
                continue
            if person is None:
                self._store.select(row.row_id, Person.from_key(key), term=key)
            else:
                self._store.select(row.row_id, person, term=person.display_name or key)
        logger.debug("Load completed: %d row(s)", len(self._rows))

    # --- Per-row picker ---

    def on_input(self, index: int, text: str) -> None:
        if self.read_only or not self._rows.in_bounds(index):
            logger.debug("Ignoring input for row %d", index)
            return
        self.active_index = index
        self.error_message = ""
        self._search.on_input(self._rows[index].row_id, text)

    def pick(self, index: int, person: Person) -> None:
        if self.read_only or not self._rows.in_bounds(index):
            return
        row_id = self._rows[index].row_id
        self._search.invalidate(row_id)
        self._store.select(row_id, person, term=person.display_name or "")
        self._store.clear_suggestions(row_id)
        self._rows.set_approver(index, person.login or "")
        self.active_index = None
        logger.debug("Selected %s for row %d", person.login, index)
        self._save()

    def clear_row(self, index: int) -> None:
        if self.read_only or not self._rows.in_bounds(index):
            return
        row_id = self._rows[index].row_id
        self._search.invalidate(row_id)
        self._store.select(row_id, None, term="")
        self._store.clear_suggestions(row_id)
        self._rows.set_approver(index, "")
        logger.debug("Cleared row %d", index)
        self._save()

    # --- Structural edits ---

    def add_row(self) -> bool:
        if self._rows.add() is None:
            return False
        self._save()
        return True

    def remove_row(self, index: int) -> bool:
        removed = self._rows.remove(index)
        if removed is None:
            return False
        self._search.forget(removed.row_id)
        self._store.discard(removed.row_id)
        self.active_index = None
        self._save()
        return True

    def move_up(self, index: int) -> bool:
        if not self._rows.move_up(index):
            return False
        self._follow_active(index, index - 1)
        self._save()
        return True

    def move_down(self, index: int) -> bool:
        if not self._rows.move_down(index):
            return False
        self._follow_active(index, index + 1)
        self._save()
        return True

    def ensure_min_rows(self) -> None:
        if self.read_only:
            return
        self._rows.ensure_min_rows()
        self._save()

    def _follow_active(self, a: int, b: int) -> None:
        if self.active_index == a:
            self.active_index = b
        elif self.active_index == b:
            self.active_index = a

    def save(self, *, force: bool = False) -> bool:
        """Persist the current rows; ``force`` re-emits an unchanged value."""
        return self._gateway.save(self._rows, force=force)

    def _save(self) -> bool:
        return self.save()

    # --- Lifecycle ---

    async def settle(self) -> None:
        """Wait for pending searches and notifications to finish."""
        await self._search.drain()
        await self._gateway.drain()

    async def aclose(self) -> None:
        self._search.cancel_all()
        await self._search.drain()
        await self._gateway.drain()
        close = getattr(self._directory, "close", None)
        if close is not None:
            await close()


def build_directory_client(config: RepeaterConfig, mode: ModeController) -> DirectoryClient:
    """Graph directory client with MSAL-backed tokens."""
    from approvers.auth.provider import AuthTokenProvider
    from approvers.directory.client import GraphDirectoryClient

    return GraphDirectoryClient(
        AuthTokenProvider(config.auth),
        mode,
        scopes=config.auth.scopes,
        settings=config.directory,
    )


def create_repeater(
    config: RepeaterConfig,
    *,
    mode: ModeController | None = None,
    directory: DirectoryClient | None = None,
    mirror_sink: MirrorSink | None = None,
    bus: EventBus | None = None,
) -> ApproversRepeater:
    if mode is None:
        from approvers.mode import StaticMode

        mode = StaticMode(config.mode.read_only and not config.mode.force_editable)
    if directory is None:
        directory = build_directory_client(config, mode)
    return ApproversRepeater(config, mode, directory, bus=bus, mirror_sink=mirror_sink)

"""Per-row debounced directory search.

Each row has at most one pending debounce timer. Every keystroke bumps
the row's generation; a search result is applied only if the generation
it was started under is still the row's current one. In-flight requests
are never aborted, their results are just dropped when stale.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable
from typing import Any

from approvers.config import DirectorySettings
from approvers.directory.client import DirectoryClient
from approvers.selection import SelectionStore

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str], None]


class SearchController:
    def __init__(
        self,
        directory: DirectoryClient,
        store: SelectionStore,
        *,
        settings: DirectorySettings | None = None,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self._directory = directory
        self._store = store
        self._settings = settings or DirectorySettings()
        self._on_update = on_update
        self._timers: dict[str, asyncio.Task[Any]] = {}
        self._generations: dict[str, int] = {}
        self._inflight: Counter[str] = Counter()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def min_chars(self) -> int:
        return self._settings.min_chars

    @property
    def loading(self) -> bool:
        return any(count > 0 for count in self._inflight.values())

    def is_searching(self, row_id: str) -> bool:
        return self._inflight[row_id] > 0

    def is_pending(self, row_id: str) -> bool:
        return row_id in self._timers

    def generation(self, row_id: str) -> int:
        return self._generations.get(row_id, 0)

    def on_input(self, row_id: str, term: str) -> None:
        """Record a keystroke and (re)schedule the row's search."""
        self._store.set_term(row_id, term)
        self._store.get(row_id).error = ""
        generation = self._generations.get(row_id, 0) + 1
        self._generations[row_id] = generation
        self._cancel_timer(row_id)

        if len(term) < self.min_chars or not term.strip():
            self._store.clear_suggestions(row_id)
            logger.debug("Input too short, cleared suggestions for row %s", row_id)
            self._notify(row_id)
            return

        task = asyncio.get_running_loop().create_task(
            self._debounced(row_id, term, generation)
        )
        self._timers[row_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def forget(self, row_id: str) -> None:
        """Drop a row: cancel its timer and orphan any in-flight result."""
        self._cancel_timer(row_id)
        self._generations.pop(row_id, None)

    def invalidate(self, row_id: str) -> None:
        """Make any pending or in-flight search for the row stale."""
        self._cancel_timer(row_id)
        if row_id in self._generations:
            self._generations[row_id] += 1

    def cancel_all(self) -> None:
        for row_id in list(self._timers):
            self._cancel_timer(row_id)
        self._generations.clear()

    async def drain(self) -> None:
        """Wait until every scheduled and in-flight search has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_timer(self, row_id: str) -> None:
        task = self._timers.pop(row_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _is_current(self, row_id: str, generation: int) -> bool:
        return self._generations.get(row_id) == generation

    async def _debounced(self, row_id: str, term: str, generation: int) -> None:
        await asyncio.sleep(self._settings.debounce_seconds)
        # Past the timer: from here on the query is not cancellable.
        if self._timers.get(row_id) is asyncio.current_task():
            del self._timers[row_id]
        if not self._is_current(row_id, generation):
            return
        await self._query(row_id, term, generation)

    async def _query(self, row_id: str, term: str, generation: int) -> None:
        self._inflight[row_id] += 1
        self._notify(row_id)
        try:
            results = await self._directory.search(
                term, self._settings.endpoint, self._settings.limit
            )
        except Exception as e:
            logger.warning("Search error for row %s: %s", row_id, e)
            if self._is_current(row_id, generation):
                self._store.set_error(row_id, str(e) or "Search error.")
            return
        finally:
            self._inflight[row_id] -= 1
            if self._inflight[row_id] <= 0:
                del self._inflight[row_id]
            self._notify(row_id)

        if not self._is_current(row_id, generation):
            logger.debug("Discarding stale results for row %s (%r)", row_id, term)
            return
        self._store.set_suggestions(row_id, results)
        logger.debug("Suggestions updated for row %s: %d result(s)", row_id, len(results))
        self._notify(row_id)

    def _notify(self, row_id: str) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(row_id)
        except Exception as e:
            logger.warning("Search update callback failed: %s", e)

"""Persisted value: canonical JSON, change notification, optional mirror.

The bound value is a compact JSON array of ``{"order", "approver"}``
objects. A save that would produce the same bytes as the last emitted
value does nothing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from approvers.config import MirrorSettings
from approvers.events.bus import EventBus
from approvers.events.types import MIRROR_FIELD_EVENTS
from approvers.mode import ModeController
from approvers.rows import Row

logger = logging.getLogger(__name__)

EMPTY_VALUE = "[]"


def serialize(rows: Iterable[Row]) -> str:
    return json.dumps(
        [row.to_dict() for row in rows], separators=(",", ":"), ensure_ascii=False
    )


def serialize_pretty(rows: Iterable[Row]) -> str:
    return json.dumps([row.to_dict() for row in rows], indent=2, ensure_ascii=False)


def parse_value(value: str | None) -> list[Row]:
    """Parse a bound value into rows; anything unreadable yields no rows."""
    try:
        data = json.loads(value or EMPTY_VALUE)
    except (TypeError, ValueError) as e:
        logger.error("Failed to parse initial value %r: %s", value, e)
        return []
    if not isinstance(data, list):
        logger.error("Initial value is not a JSON array: %r", value)
        return []
    return [Row.from_dict(item, order=i + 1) for i, item in enumerate(data)]


class MirrorField(Protocol):
    """An externally owned text field that receives the pretty JSON."""

    def set_value(self, text: str) -> None: ...

    def focus(self) -> None: ...

    def dispatch(self, event_type: str, detail: str | None = None) -> None: ...

    def blur(self) -> None: ...


class MirrorSink(Protocol):
    def lookup(self, target_id: str) -> MirrorField | None: ...


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


class FileMirrorField:
    """Mirror field stored as ``<directory>/<target_id>.json``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.dispatched: list[str] = []
        self.focused = False

    def set_value(self, text: str) -> None:
        _atomic_write_text(self.path, text + "\n")

    def focus(self) -> None:
        self.focused = True

    def dispatch(self, event_type: str, detail: str | None = None) -> None:
        self.dispatched.append(event_type)
        logger.debug("Mirror %s: %s", self.path.name, event_type)

    def blur(self) -> None:
        self.focused = False


class FileMirrorSink:
    """Resolve mirror targets to JSON files under one directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._fields: dict[str, FileMirrorField] = {}

    def lookup(self, target_id: str) -> FileMirrorField | None:
        name = target_id.strip()
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        if name not in self._fields:
            self._fields[name] = FileMirrorField(self.directory / f"{name}.json")
        return self._fields[name]


class PersistenceGateway:
    """Serialize rows, skip no-op saves, notify the host, mirror the JSON."""

    def __init__(
        self,
        mode: ModeController,
        bus: EventBus,
        *,
        value: str = EMPTY_VALUE,
        source: str = "approvers",
        mirror: MirrorSettings | None = None,
        mirror_sink: MirrorSink | None = None,
    ) -> None:
        self._mode = mode
        self._bus = bus
        self._value = value
        self._source = source
        self._mirror = mirror or MirrorSettings()
        self._mirror_sink = mirror_sink
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def value(self) -> str:
        return self._value

    def reset(self, value: str) -> None:
        """Adopt a host-supplied value without emitting anything."""
        self._value = value

    def save(self, rows: Iterable[Row], *, force: bool = False) -> bool:
        """Persist rows. Returns True when a change was emitted."""
        if self._mode.is_read_only():
            logger.debug("Read-only, skipping save")
            return False
        rows = list(rows)
        new_value = serialize(rows)
        if new_value == self._value and not force:
            logger.debug("No change in value, skipping update")
            return False

        self._value = new_value
        logger.debug("Value updated: %s", new_value)
        self._bus.publish(new_value, source=self._source)

        if self._mirror.target_id:
            self._write_mirror(serialize_pretty(rows))
        return True

    def _write_mirror(self, text: str) -> None:
        target_id = self._mirror.target_id
        field = self._mirror_sink.lookup(target_id) if self._mirror_sink else None
        if field is None:
            logger.warning("Mirror target not found for id %s", target_id)
            return
        field.set_value(text)
        update = getattr(self._mirror_sink, "update_control_value", None)
        if callable(update):
            try:
                update(target_id, text)
            except Exception as e:
                logger.error("Host control update failed for %s: %s", target_id, e)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None or self._mirror.delay_seconds <= 0:
            _notify_field(field, text)
            return
        task = loop.create_task(self._notify_later(field, text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify_later(self, field: MirrorField, text: str) -> None:
        await asyncio.sleep(self._mirror.delay_seconds)
        _notify_field(field, text)

    async def drain(self) -> None:
        """Wait for scheduled mirror notifications."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _notify_field(field: MirrorField, text: str) -> None:
    """Focus, fire the field's own binding events, then blur."""
    field.focus()
    try:
        for event_type in MIRROR_FIELD_EVENTS:
            field.dispatch(event_type, text)
    finally:
        field.blur()

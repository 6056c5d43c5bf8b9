"""Read-only/editable mode signal.

The repeater only ever asks one question: is the surrounding form
read-only right now? Hosts answer it with any object implementing
``ModeController``. ``DetectedMode`` packages the usual detection chain
for hosts that expose the individual signals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)

# Form-mode values the host reports for a display-only form.
DISPLAY_FORM_MODES = frozenset({2, "2", "Display"})


@runtime_checkable
class ModeController(Protocol):
    def is_read_only(self) -> bool: ...


class StaticMode:
    """Fixed mode, flippable by the host."""

    def __init__(self, read_only: bool = False) -> None:
        self.read_only = read_only

    def is_read_only(self) -> bool:
        return self.read_only


@dataclass
class ModeSignals:
    """Raw signals a host can expose, consulted in priority order."""

    force_editable: bool = False
    form_mode: Callable[[], object] | None = None
    edit_affordance: Callable[[], bool] | None = None
    url: str = ""
    readonly_attribute: str | None = None


class DetectedMode:
    """Evaluate ``ModeSignals`` on every call.

    1. explicit force-editable override
    2. host form-mode query
    3. an edit affordance in the surrounding document
    4. ``mode=2`` URL query parameter
    5. ``readonly="true"`` attribute
    """

    def __init__(self, signals: ModeSignals) -> None:
        self.signals = signals

    def is_read_only(self) -> bool:
        signals = self.signals
        if signals.force_editable:
            return False

        if signals.form_mode is not None:
            try:
                form_mode = signals.form_mode()
                if form_mode is not None:
                    return any(form_mode == m for m in DISPLAY_FORM_MODES)
            except Exception as e:
                logger.warning("Host form-mode query failed: %s", e)

        if signals.edit_affordance is not None:
            try:
                if signals.edit_affordance():
                    logger.debug("Read-only: edit affordance present")
                    return True
            except Exception as e:
                logger.warning("Edit affordance check failed: %s", e)

        if signals.url:
            query = parse_qs(urlparse(signals.url).query)
            if "2" in query.get("mode", []):
                logger.debug("Read-only: mode=2 in %s", signals.url)
                return True

        return (signals.readonly_attribute or "").strip().lower() == "true"

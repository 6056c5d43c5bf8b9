"""Opt-in latency diagnostics for directory and auth calls."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Any

_TRUTHY = {"1", "true", "yes", "on"}


def diagnostics_enabled() -> bool:
    raw = os.environ.get("APPROVERS_LATENCY_DIAGNOSTICS", "")
    return raw.strip().lower() in _TRUTHY


@contextmanager
def timed_block(
    logger: logging.Logger,
    *,
    event: str,
    fields: dict[str, Any] | None = None,
):
    """Log elapsed duration for an operation when diagnostics are enabled."""
    started = time.monotonic()
    try:
        yield
    finally:
        if diagnostics_enabled():
            elapsed_ms = max(0.0, time.monotonic() - started) * 1000.0
            payload = ""
            if fields:
                payload = " " + " ".join(f"{k}={v}" for k, v in fields.items())
            logger.info("latency event=%s duration_ms=%.2f%s", event, elapsed_ms, payload)

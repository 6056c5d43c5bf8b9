"""Bounded threadpool for blocking identity-SDK calls."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any

# Interactive sign-in blocks for as long as the user takes; a handful of
# workers is plenty for one component instance.
_AUTH_EXECUTOR = ThreadPoolExecutor(
    max_workers=4,
    thread_name_prefix="approvers-auth",
)


async def run_blocking(fn: Any, /, *args: Any, **kwargs: Any) -> Any:
    """Run a blocking callable without stalling the event loop."""
    loop = asyncio.get_running_loop()
    call = partial(fn, *args, **kwargs)
    return await loop.run_in_executor(_AUTH_EXECUTOR, call)

"""Generic wait/polling utilities.

Every long wait in a build is an interval polling loop. Each iteration
checks the build's cancellation event and the loop's own deadline, so a
cancelled build stops at the next iteration boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TypeVar

from snapwright.core.exceptions import BuildCancelledError, BuildTimeoutError, SnapwrightError


class TerminalStateError(SnapwrightError):
    """The polled resource reached a state it will never leave."""

    def __init__(self, description: str, result: object) -> None:
        self.description = description
        self.result = result
        super().__init__(f"{description} reached terminal state: {result}")


async def pause(interval: float, cancel: asyncio.Event | None) -> None:
    """Sleep for ``interval`` seconds, waking early if ``cancel`` is set."""
    if cancel is None:
        await asyncio.sleep(interval)
        return
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(cancel.wait(), timeout=interval)


T = TypeVar("T")


async def wait_for_ready(
    poll_fn: Callable[[], Awaitable[T | None]],
    ready_check: Callable[[T], bool],
    *,
    terminal_check: Callable[[T], bool] | None = None,
    timeout: float = 300.0,
    interval: float = 3.0,
    description: str = "resource",
    cancel: asyncio.Event | None = None,
    started: float | None = None,
    timeout_error: type[BuildTimeoutError] = BuildTimeoutError,
) -> T:
    """Wait until poll_fn returns something that passes ready_check.

    Args:
        poll_fn: Async function that polls for the resource state.
        ready_check: Function that returns True when resource is ready.
        terminal_check: Optional function that returns True if resource reached
            a terminal failure state (e.g., errored, archived).
        timeout: Maximum time to wait in seconds.
        interval: Time between polls in seconds.
        description: Description for error messages.
        cancel: Build cancellation event, checked on every iteration.
        started: Loop time the deadline is measured from. Defaults to now.
        timeout_error: Exception class raised on timeout.

    Returns:
        The ready resource.

    Raises:
        BuildCancelledError: If ``cancel`` is set before the resource is ready.
        BuildTimeoutError: If timeout is exceeded.
        TerminalStateError: If resource reaches terminal state.
    """
    loop = asyncio.get_running_loop()
    start = loop.time() if started is None else started

    while True:
        if cancel is not None and cancel.is_set():
            raise BuildCancelledError(f"Cancelled while waiting for {description}")

        result = await poll_fn()

        if result is not None:
            if ready_check(result):
                return result

            if terminal_check is not None and terminal_check(result):
                raise TerminalStateError(description, result)

        remaining = timeout - (loop.time() - start)
        if remaining <= 0:
            raise timeout_error(f"Timeout waiting for {description} after {timeout:.1f}s")

        await pause(min(interval, remaining), cancel)

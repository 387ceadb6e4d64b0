from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from vignette.game import GameInstance
from vignette.presentation import QueuedPresentation


async def _wait_for(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture()
def wait_for() -> Callable[..., Awaitable[None]]:
    """Yield to the loop until `predicate()` holds (handlers run up to their next prompt)."""

    return _wait_for


@pytest.fixture()
def presentation() -> QueuedPresentation:
    # Flash timing is still enforced by the channel itself.
    return QueuedPresentation(realtime_flash=False)


@pytest_asyncio.fixture()
async def game(presentation: QueuedPresentation) -> AsyncGenerator[GameInstance, None]:
    g = GameInstance(presentation)
    try:
        yield g
    finally:
        await g.close()

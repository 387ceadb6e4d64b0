from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal, Protocol

from vignette.api.models import GameOptions
from vignette.core.prompts import ChoiceOption, DialogueLine
from vignette.core.scene import Layer, RenderedObject

logger = logging.getLogger(__name__)


class CursorAffordance(StrEnum):
    default = "default"
    busy = "busy"


class PresentationPort(Protocol):
    """Everything the core asks of the rendering side.

    The core awaits each call; `show_line` returns once the player acknowledged the
    line and `show_choice` returns the selected option's value.
    """

    async def configure(self, options: GameOptions) -> None: ...

    async def mount_layers(self, layers: Sequence[Layer]) -> None: ...

    async def mount_objects(self, objects: Sequence[RenderedObject]) -> None: ...

    async def unmount_all(self) -> None: ...

    async def show_line(self, line: DialogueLine) -> None: ...

    async def show_choice(self, prompt: str, options: Sequence[ChoiceOption]) -> Any: ...

    async def flash(self, color: str, duration_ms: int) -> None: ...

    async def set_cursor(self, affordance: CursorAffordance) -> None: ...


async def guarded(what: str, call: Awaitable[Any]) -> None:
    """Await a port call; rendering failures are logged, never raised into the core."""

    try:
        await call
    except Exception:
        logger.exception("Presentation port failed during %s", what)


CommandType = Literal[
    "configure",
    "mount_layers",
    "mount_objects",
    "unmount_all",
    "show_line",
    "show_choice",
    "dismiss_prompt",
    "flash",
    "set_cursor",
]


@dataclass(frozen=True, slots=True)
class PresentationCommand:
    type: CommandType
    payload: dict[str, Any]

    def as_payload(self) -> dict[str, Any]:
        return {"type": self.type, **self.payload}


CommandListener = Callable[[PresentationCommand], None]

DEFAULT_COMMAND_LIMIT = 1000


class QueuedPresentation:
    """In-process presentation port.

    Output side: every instruction is appended to `commands` (the most recent
    `command_limit` are kept) and handed to listeners. The web adapter forwards them
    over a WebSocket and the console script prints them. A failing listener is logged
    and skipped.

    Input side: `acknowledge()` and `select(value)` resolve the prompt on screen. They
    return False when there is nothing to resolve (double clicks, late input, a value
    that is not one of the options).
    """

    def __init__(self, *, realtime_flash: bool = True, command_limit: int = DEFAULT_COMMAND_LIMIT) -> None:
        if command_limit < 1:
            raise ValueError("command_limit must be >= 1")
        self.commands: deque[PresentationCommand] = deque(maxlen=command_limit)
        self.options: GameOptions | None = None
        self.layers: list[Layer] = []
        self.objects: list[RenderedObject] = []
        self._realtime_flash = realtime_flash
        self._listeners: list[CommandListener] = []
        self._waiter: asyncio.Future[Any] | None = None
        self._waiting_for: Literal["line", "choice"] | None = None
        self._choice_values: list[Any] = []

    def subscribe(self, listener: CommandListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _record(self, type: CommandType, payload: dict[str, Any]) -> None:
        cmd = PresentationCommand(type=type, payload=payload)
        self.commands.append(cmd)
        for listener in list(self._listeners):
            try:
                listener(cmd)
            except Exception:
                logger.exception("Presentation listener failed on %s", type)

    def commands_of(self, type: CommandType) -> list[PresentationCommand]:
        return [c for c in self.commands if c.type == type]

    @property
    def waiting_for(self) -> Literal["line", "choice"] | None:
        return self._waiting_for

    async def configure(self, options: GameOptions) -> None:
        self.options = options
        # `container` is a host handle, not data; it never leaves the process.
        self._record("configure", options.model_dump(mode="json", by_alias=True, exclude={"container"}))

    async def mount_layers(self, layers: Sequence[Layer]) -> None:
        self.layers = list(layers)
        self._record("mount_layers", {"layers": [layer.as_payload() for layer in layers]})

    async def mount_objects(self, objects: Sequence[RenderedObject]) -> None:
        self.objects = list(objects)
        self._record("mount_objects", {"objects": [obj.as_payload() for obj in objects]})

    async def unmount_all(self) -> None:
        self.layers = []
        self.objects = []
        self._record("unmount_all", {})

    async def show_line(self, line: DialogueLine) -> None:
        self._record("show_line", line.as_payload())
        await self._wait("line")

    async def show_choice(self, prompt: str, options: Sequence[ChoiceOption]) -> Any:
        self._choice_values = [o.value for o in options]
        self._record("show_choice", {"prompt": prompt, "options": [o.as_payload() for o in options]})
        return await self._wait("choice")

    async def _wait(self, kind: Literal["line", "choice"]) -> Any:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[Any] = loop.create_future()
        self._waiter = waiter
        self._waiting_for = kind
        try:
            return await waiter
        except asyncio.CancelledError:
            self._record("dismiss_prompt", {"kind": kind})
            raise
        finally:
            if self._waiter is waiter:
                self._waiter = None
                self._waiting_for = None
                self._choice_values = []

    def acknowledge(self) -> bool:
        if self._waiting_for != "line" or self._waiter is None or self._waiter.done():
            return False
        self._waiter.set_result(None)
        return True

    def select(self, value: Any) -> bool:
        if self._waiting_for != "choice" or self._waiter is None or self._waiter.done():
            return False
        if value not in self._choice_values:
            return False
        self._waiter.set_result(value)
        return True

    async def flash(self, color: str, duration_ms: int) -> None:
        self._record("flash", {"color": color, "duration_ms": duration_ms})
        if self._realtime_flash:
            await asyncio.sleep(max(duration_ms, 0) / 1000)

    async def set_cursor(self, affordance: CursorAffordance) -> None:
        self._record("set_cursor", {"affordance": affordance.value})

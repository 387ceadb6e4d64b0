from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from vignette.channel import DialogueChannel
from vignette.controller import EventSink, SceneController
from vignette.core.errors import HandlerExecutionError, StaleSessionError, UnknownActionError
from vignette.core.prompts import ChoiceOption, DialogueLine
from vignette.core.scene import ObjectSpec, RenderedObject, SceneDefinition
from vignette.core.state import StateStore
from vignette.presentation import CursorAffordance, PresentationPort, guarded
from vignette.registry import ActionRegistry

logger = logging.getLogger(__name__)

DEFAULT_FLASH_MS = 300


class DispatchOutcome(StrEnum):
    completed = "completed"
    ignored = "ignored"
    unknown_action = "unknown_action"
    failed = "failed"
    abandoned = "abandoned"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcome: DispatchOutcome
    object_key: str | None
    action: str
    error: BaseException | None = None


class BoundState:
    """State accessor handed to handlers.

    Reads always go to the live store, so a resumed handler sees current values.
    Writes are refused once the handler's scene session has been superseded.
    """

    def __init__(self, store: StateStore, api: "Capabilities") -> None:
        self._store = store
        self._api = api

    def get(self, key: str) -> Any:
        return self._store.get(key)

    def has(self, key: str) -> bool:
        return self._store.has(key)

    def set(self, key: str, value: Any) -> None:
        self._api.ensure_current()
        self._store.set(key, value)

    def toggle(self, key: str) -> bool:
        self._api.ensure_current()
        return self._store.toggle(key)

    def delete(self, key: str) -> None:
        self._api.ensure_current()
        self._store.delete(key)

    def snapshot(self) -> dict[str, Any]:
        return self._store.snapshot()


class Capabilities:
    """The `api` object a handler receives: go, say, choice, flash, state, reload.

    Bound to the scene generation that was current when the handler started. A handler
    that calls `go` follows the session its own transition creates; a transition issued
    by anyone else makes this object stale.
    """

    def __init__(
        self,
        *,
        controller: SceneController,
        channel: DialogueChannel,
        store: StateStore,
        generation: int,
    ) -> None:
        self._controller = controller
        self._channel = channel
        self.generation = generation
        self.state = BoundState(store, self)

    def follow(self, generation: int) -> None:
        self.generation = generation

    @property
    def is_current(self) -> bool:
        return self.generation == self._controller.generation

    def ensure_current(self) -> None:
        self._channel.ensure_current(self.generation)

    def go(self, scene_id: str) -> Awaitable[None]:
        self.ensure_current()
        return self._controller.go(scene_id, origin=self)

    def reload(self) -> Awaitable[None]:
        self.ensure_current()
        return self._controller.reload()

    async def say(self, lines: Iterable[DialogueLine | Mapping[str, Any] | str] | str) -> None:
        await self._channel.say(lines, generation=self.generation)

    async def choice(self, prompt: str, options: Iterable[ChoiceOption | Mapping[str, Any] | tuple[str, Any] | str]) -> Any:
        return await self._channel.choice(prompt, options, generation=self.generation)

    async def flash(self, color: str, duration_ms: int = DEFAULT_FLASH_MS) -> None:
        await self._channel.flash(color, duration_ms, generation=self.generation)


async def _invoke(fn: Callable[..., Any], *args: Any) -> None:
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


class ActionRuntime:
    """Runs handlers for clicked objects, one at a time per game.

    Any dispatch that arrives while a handler is in flight (a re-click on the same
    object, or a click elsewhere) is ignored rather than interleaved.
    """

    def __init__(
        self,
        *,
        actions: ActionRegistry,
        controller: SceneController,
        channel: DialogueChannel,
        store: StateStore,
        port: PresentationPort,
        emit: EventSink,
    ) -> None:
        self._actions = actions
        self._controller = controller
        self._channel = channel
        self._store = store
        self._port = port
        self._emit = emit
        self._active: str | None = None

    @property
    def active(self) -> str | None:
        """Key of the object whose handler is in flight."""

        return self._active

    def capabilities(self, generation: int | None = None) -> Capabilities:
        return Capabilities(
            controller=self._controller,
            channel=self._channel,
            store=self._store,
            generation=self._controller.generation if generation is None else generation,
        )

    async def dispatch(self, obj: ObjectSpec | RenderedObject) -> DispatchResult:
        if isinstance(obj, RenderedObject):
            key: str | None = obj.key
            spec = obj.spec
        else:
            key, spec = obj.id, obj
        label = spec.action.label
        generation = self._controller.generation

        if self._active is not None:
            logger.debug("Ignoring click on %s: handler for %s still in flight", key, self._active)
            self._emit("ACTION_IGNORED", generation, {"object": key, "action": label, "busy_with": self._active})
            return DispatchResult(DispatchOutcome.ignored, key, label)

        try:
            handler = self._actions.resolve(spec.action)
        except UnknownActionError as e:
            logger.error("%s (object %s)", e, key)
            self._emit("ACTION_FAILED", generation, {"object": key, "action": label, "error": str(e)})
            return DispatchResult(DispatchOutcome.unknown_action, key, label, e)

        self._active = key or label
        api = self.capabilities(generation)
        self._emit("ACTION_STARTED", generation, {"object": key, "action": label})
        try:
            await guarded("set_cursor", self._port.set_cursor(CursorAffordance.busy))
            result = await self._run(label, handler, api, key)
        finally:
            self._active = None
        await guarded("set_cursor", self._port.set_cursor(CursorAffordance.default))
        return result

    async def _run(self, label: str, handler: Callable[..., Any], api: Capabilities, key: str | None) -> DispatchResult:
        try:
            await _invoke(handler, api.state, api)
        except StaleSessionError as e:
            logger.debug("Handler %s abandoned: %s", label, e)
            self._emit("ACTION_ABANDONED", e.generation, {"object": key, "action": label})
            return DispatchResult(DispatchOutcome.abandoned, key, label, e)
        except Exception as e:
            err = HandlerExecutionError(label, e)
            err.__cause__ = e
            logger.error("%s", err, exc_info=e)
            self._emit("ACTION_FAILED", api.generation, {"object": key, "action": label, "error": repr(e)})
            return DispatchResult(DispatchOutcome.failed, key, label, err)
        self._emit("ACTION_COMPLETED", api.generation, {"object": key, "action": label})
        return DispatchResult(DispatchOutcome.completed, key, label)

    async def run_hook(self, scene: SceneDefinition, hook: Literal["on_enter", "on_exit"], generation: int) -> None:
        """Run a lifecycle hook with the same (state, api) pair handlers get.

        Failures are logged and do not stop the transition.
        """

        fn = getattr(scene, hook)
        if fn is None:
            return
        label = f"{scene.scene_id}.{hook}"
        api = self.capabilities(generation)
        try:
            await _invoke(fn, api.state, api)
        except StaleSessionError as e:
            logger.debug("Hook %s abandoned: %s", label, e)
        except Exception as e:
            err = HandlerExecutionError(label, e)
            err.__cause__ = e
            logger.error("%s", err, exc_info=e)
            self._emit("ACTION_FAILED", generation, {"hook": label, "error": repr(e)})

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any, Literal

from vignette.actions import ActionRuntime, Capabilities, DispatchOutcome, DispatchResult
from vignette.api.models import GameOptions, LifecyclePhase
from vignette.channel import DialogueChannel
from vignette.controller import SceneController
from vignette.core.events import EventType, GameEvent
from vignette.core.scene import ActionHandler, ObjectSpec, RenderedObject, SceneDefinition
from vignette.core.state import StateStore
from vignette.presentation import PresentationPort
from vignette.registry import ActionRegistry, SceneRegistry

logger = logging.getLogger(__name__)

EventListener = Callable[[GameEvent], None]

# Events kept in `GameInstance.history`; older ones are dropped.
DEFAULT_HISTORY_LIMIT = 1000


class GameInstance:
    """One running game: State, registries, scene controller, dialogue channel, runtime.

    Built once per embedding and passed around explicitly. Typical use:

        game = GameInstance(presentation)
        game.scene("forest", {"layers": [...], "objects": [...]})

        @game.action("openChest")
        async def open_chest(state, api):
            state.set("hasKey", True)
            await api.say([{"speaker": "You", "text": "A key!"}])
            await api.go("gate")

        await game.start("forest")
    """

    def __init__(
        self,
        presentation: PresentationPort,
        *,
        options: GameOptions | Mapping[str, Any] | None = None,
        store: StateStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        if options is None:
            options = GameOptions()
        elif not isinstance(options, GameOptions):
            options = GameOptions.model_validate(options)
        self.options = options
        self.presentation = presentation
        self.store = store if store is not None else StateStore()
        self.scenes = SceneRegistry()
        self.actions = ActionRegistry()
        self.history: deque[GameEvent] = deque(maxlen=history_limit)
        self._listeners: list[EventListener] = []

        self.channel = DialogueChannel(presentation, current_generation=lambda: self.controller.generation)
        self.controller = SceneController(
            scenes=self.scenes,
            store=self.store,
            port=presentation,
            channel=self.channel,
            run_hook=self._run_hook,
            emit=self._emit,
        )
        self.runtime = ActionRuntime(
            actions=self.actions,
            controller=self.controller,
            channel=self.channel,
            store=self.store,
            port=presentation,
            emit=self._emit,
        )
        self._unsubscribe_state = self.store.subscribe(self._on_state_changed)

    # Authoring

    def scene(self, scene_id: str | SceneDefinition, declaration: Mapping[str, Any] | None = None) -> SceneDefinition:
        if isinstance(scene_id, SceneDefinition):
            return self.scenes.register(scene_id)
        return self.scenes.declare(scene_id, declaration or {})

    def action(self, name: str, handler: ActionHandler | None = None) -> Any:
        """Register `handler` under `name`; usable as a decorator when `handler` is omitted."""

        if handler is not None:
            return self.actions.register(name, handler)

        def _decorator(fn: ActionHandler) -> ActionHandler:
            return self.actions.register(name, fn)

        return _decorator

    # Runtime

    @property
    def state(self) -> StateStore:
        return self.store

    @property
    def phase(self) -> LifecyclePhase:
        return self.controller.phase

    @property
    def generation(self) -> int:
        return self.controller.generation

    @property
    def current_scene_id(self) -> str | None:
        return self.controller.current_scene_id

    @property
    def objects(self) -> tuple[RenderedObject, ...]:
        return self.controller.objects

    async def start(self, scene_id: str) -> None:
        """Configure the presentation once, then enter `scene_id`. Valid only once."""

        await self.controller.start(scene_id, options=self.options)

    def go(self, scene_id: str) -> asyncio.Future[None]:
        return self.controller.go(scene_id)

    def reload(self) -> asyncio.Future[None]:
        return self.controller.reload()

    def api(self) -> Capabilities:
        """Capabilities bound to the current session, for host-driven scripting."""

        return self.runtime.capabilities()

    async def dispatch(self, obj: ObjectSpec | RenderedObject) -> DispatchResult:
        return await self.runtime.dispatch(obj)

    def find_object(self, object_id: str) -> RenderedObject | None:
        return next((o for o in self.controller.objects if o.key == object_id), None)

    def can_click(self, object_id: str) -> bool:
        return (
            self.controller.phase == LifecyclePhase.active
            and self.runtime.active is None
            and self.find_object(object_id) is not None
        )

    async def click(self, object_id: str) -> DispatchResult:
        """Player clicked a live object. Only honoured while the scene is active."""

        if self.controller.phase != LifecyclePhase.active:
            logger.debug("Ignoring click on %s during %s", object_id, self.controller.phase.value)
            self._emit("ACTION_IGNORED", self.generation, {"object": object_id, "phase": self.phase.value})
            return DispatchResult(DispatchOutcome.ignored, object_id, "")
        obj = self.find_object(object_id)
        if obj is None:
            logger.debug("Ignoring click on %s: not visible in %s", object_id, self.current_scene_id)
            self._emit("ACTION_IGNORED", self.generation, {"object": object_id, "reason": "not_visible"})
            return DispatchResult(DispatchOutcome.ignored, object_id, "")
        return await self.runtime.dispatch(obj)

    def click_later(self, object_id: str) -> asyncio.Task[DispatchResult] | None:
        """Schedule a click without waiting for the handler; None if it would be ignored."""

        if not self.can_click(object_id):
            return None
        return asyncio.get_running_loop().create_task(self.click(object_id), name=f"vignette-click-{object_id}")

    async def close(self) -> None:
        self._unsubscribe_state()
        await self.controller.close()

    async def __aenter__(self) -> "GameInstance":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # Events

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def events_of(self, type: EventType) -> list[GameEvent]:
        return [e for e in self.history if e.type == type]

    def _emit(self, type: EventType, generation: int, payload: dict[str, Any]) -> None:
        event = GameEvent.now(type=type, generation=generation, payload=payload)
        self.history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", type)

    def _on_state_changed(self, key: str, old: Any, new: Any) -> None:
        self._emit("STATE_CHANGED", self.generation, {"key": key, "old": old, "new": new})

    async def _run_hook(self, scene: SceneDefinition, hook: Literal["on_enter", "on_exit"], generation: int) -> None:
        await self.runtime.run_hook(scene, hook, generation)

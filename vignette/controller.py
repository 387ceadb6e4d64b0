from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Protocol

from vignette.api.models import GameOptions, LifecyclePhase
from vignette.channel import DialogueChannel
from vignette.core.errors import SceneLifecycleError
from vignette.core.events import EventType
from vignette.core.scene import RenderedObject, SceneDefinition, visible_objects
from vignette.core.state import StateStore
from vignette.fsm import SceneFSM
from vignette.presentation import PresentationPort, guarded
from vignette.registry import SceneRegistry

logger = logging.getLogger(__name__)

HookRunner = Callable[[SceneDefinition, Literal["on_enter", "on_exit"], int], Awaitable[None]]
EventSink = Callable[[EventType, int, dict[str, Any]], None]


class GenerationFollower(Protocol):
    """Whoever issued a transition follows it into the session it creates."""

    def follow(self, generation: int) -> None: ...


@dataclass(frozen=True, slots=True)
class SceneSession:
    scene: SceneDefinition
    generation: int
    objects: tuple[RenderedObject, ...] = ()

    @property
    def scene_id(self) -> str:
        return self.scene.scene_id


@dataclass(slots=True)
class _Request:
    kind: Literal["start", "go", "reload"]
    done: asyncio.Future[None]
    scene_id: str | None = None
    origin: GenerationFollower | None = field(default=None)
    options: GameOptions | None = None


def _mark_retrieved(fut: asyncio.Future[None]) -> None:
    # The worker already logged the failure; fire-and-forget callers should not get
    # "exception was never retrieved" noise on top.
    if not fut.cancelled():
        fut.exception()


class SceneController:
    """Owns the current scene session and runs every lifecycle step on one worker task.

    `start`, `go` and `reload` only enqueue work, so they never yield and are applied in
    exactly the order they were issued. The worker:

      start:  configure the port, mount layers, render objects, on_enter, settle.
      go:     on_exit (awaited), bump generation, unmount, mount layers, render objects,
              on_enter, settle.
      reload: re-render the current scene's objects; no hooks, same generation.

    The controller never writes State; it only reads it to decide visibility.
    """

    def __init__(
        self,
        *,
        scenes: SceneRegistry,
        store: StateStore,
        port: PresentationPort,
        channel: DialogueChannel,
        run_hook: HookRunner,
        emit: EventSink,
    ) -> None:
        self._scenes = scenes
        self._store = store
        self._port = port
        self._channel = channel
        self._run_hook = run_hook
        self._emit = emit
        self._fsm = SceneFSM()
        self._session: SceneSession | None = None
        self._generation = 0
        self._started = False
        self._queue: asyncio.Queue[_Request] | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def phase(self) -> LifecyclePhase:
        return self._fsm.phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def session(self) -> SceneSession | None:
        return self._session

    @property
    def current_scene_id(self) -> str | None:
        return self._session.scene_id if self._session is not None else None

    @property
    def objects(self) -> tuple[RenderedObject, ...]:
        return self._session.objects if self._session is not None else ()

    @property
    def in_worker(self) -> bool:
        return self._worker is not None and asyncio.current_task() is self._worker

    async def start(self, scene_id: str, *, options: GameOptions | None = None) -> None:
        if self._started:
            raise SceneLifecycleError(f"start() is only valid once (phase={self.phase.value})")
        self._scenes.require(scene_id)
        self._started = True
        await self._enqueue(_Request(kind="start", done=self._new_future(), scene_id=scene_id, options=options))

    def go(self, scene_id: str, *, origin: GenerationFollower | None = None) -> asyncio.Future[None]:
        if not self._started:
            raise SceneLifecycleError("go() called before start()")
        self._scenes.require(scene_id)
        return self._enqueue(_Request(kind="go", done=self._new_future(), scene_id=scene_id, origin=origin))

    def reload(self) -> asyncio.Future[None]:
        return self._enqueue(_Request(kind="reload", done=self._new_future()))

    async def close(self) -> None:
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._channel.supersede(self._generation + 1)

    def _new_future(self) -> asyncio.Future[None]:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_mark_retrieved)
        return fut

    def _enqueue(self, request: _Request) -> asyncio.Future[None]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(), name="vignette-scene-controller")
        self._queue.put_nowait(request)
        if self.in_worker:
            # Issued from a lifecycle hook: it runs after the current step settles, so
            # waiting for it here would deadlock the worker.
            ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            ready.set_result(None)
            return ready
        return request.done

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            request = await self._queue.get()
            try:
                if request.kind == "start":
                    await self._do_start(request)
                elif request.kind == "go":
                    await self._do_go(request)
                else:
                    await self._do_reload()
            except Exception as e:
                logger.exception("Scene %s request failed", request.kind)
                if not request.done.done():
                    request.done.set_exception(e)
            else:
                if not request.done.done():
                    request.done.set_result(None)
            finally:
                self._queue.task_done()

    async def _do_start(self, request: _Request) -> None:
        assert request.scene_id is not None
        scene = self._scenes.require(request.scene_id)
        self._fsm.step("begin_start")
        if request.options is not None:
            await guarded("configure", self._port.configure(request.options))
        await self._enter(scene, origin=request.origin, teardown=False)

    async def _do_go(self, request: _Request) -> None:
        assert request.scene_id is not None and self._session is not None
        target = self._scenes.require(request.scene_id)
        leaving = self._session

        self._fsm.step("begin_exit")
        logger.info("Leaving scene %s (generation %d) for %s", leaving.scene_id, leaving.generation, target.scene_id)
        try:
            if leaving.scene.on_exit is not None:
                await self._run_hook(leaving.scene, "on_exit", leaving.generation)
            self._emit("SCENE_EXITED", leaving.generation, {"scene_id": leaving.scene_id, "next": target.scene_id})
        except Exception:
            logger.exception("Leaving scene %s failed; entering %s anyway", leaving.scene_id, target.scene_id)

        self._fsm.step("begin_enter")
        await self._enter(target, origin=request.origin, teardown=True)

    async def _enter(self, scene: SceneDefinition, *, origin: GenerationFollower | None, teardown: bool) -> None:
        self._generation += 1
        generation = self._generation
        self._session = SceneSession(scene=scene, generation=generation)
        if origin is not None:
            origin.follow(generation)
        self._channel.supersede(generation)

        # Whatever fails below, the scene still settles so later transitions are accepted.
        try:
            if teardown:
                await guarded("unmount_all", self._port.unmount_all())
            await guarded("mount_layers", self._port.mount_layers(scene.layers))
            await self._render(scene, generation)

            if scene.on_enter is not None:
                await self._run_hook(scene, "on_enter", generation)
        finally:
            self._fsm.step("settle")
        logger.info("Entered scene %s (generation %d)", scene.scene_id, generation)
        self._emit("SCENE_ENTERED", generation, {"scene_id": scene.scene_id})

    async def _do_reload(self) -> None:
        session = self._session
        if session is None:
            logger.debug("reload() before the first scene; nothing to render")
            return
        objects = visible_objects(session.scene, self._store)
        if objects == session.objects:
            return
        await self._render(session.scene, session.generation, objects=objects)

    async def _render(
        self,
        scene: SceneDefinition,
        generation: int,
        *,
        objects: tuple[RenderedObject, ...] | None = None,
    ) -> None:
        if objects is None:
            objects = visible_objects(scene, self._store)
        assert self._session is not None
        self._session = replace(self._session, objects=objects)
        await guarded("mount_objects", self._port.mount_objects(objects))
        self._emit(
            "OBJECTS_RENDERED",
            generation,
            {"scene_id": scene.scene_id, "objects": [o.key for o in objects]},
        )

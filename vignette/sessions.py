from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from vignette.api.models import GameOptions, SessionSnapshot
from vignette.config import Settings
from vignette.core.events import GameEvent
from vignette.core.state import StateStore
from vignette.game import GameInstance
from vignette.presentation import PresentationCommand, QueuedPresentation
from vignette.stories.catalog import get_story
from vignette.websocket_hub import SessionWebSocketHub

logger = logging.getLogger(__name__)

# How long session creation waits for the start scene to settle. A start scene that
# prompts on enter keeps waiting for the player after the response is sent.
START_WAIT_S = 2.0


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return repr(value)


@dataclass(slots=True)
class Session:
    session_id: UUID
    story: str
    game: GameInstance
    presentation: QueuedPresentation
    tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def track(self, task: asyncio.Task[Any]) -> None:
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    def snapshot(self) -> SessionSnapshot:
        game = self.game
        pending = game.channel.pending
        return SessionSnapshot(
            session_id=self.session_id,
            story=self.story,
            scene_id=game.current_scene_id,
            phase=game.phase,
            generation=game.generation,
            objects=[o.as_payload() for o in game.objects],
            state=_jsonable(game.store.snapshot()),
            pending_prompt=({"kind": pending.kind, **_jsonable(pending.payload)} if pending is not None else None),
            handler_active=game.runtime.active is not None,
        )


class SessionStore:
    """In-process registry of running games, one QueuedPresentation each.

    Presentation commands and game events are fanned out to the session's WebSocket
    connections through the hub.
    """

    def __init__(self, *, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.hub = SessionWebSocketHub()
        self._sessions: dict[UUID, Session] = {}

    def _make_store(self, session_id: UUID) -> StateStore:
        if self.settings.state_backend == "redis":
            from vignette.infra.redis_client import create_redis
            from vignette.infra.redis_state import RedisStateStore

            return RedisStateStore(r=create_redis(self.settings), game_id=str(session_id))
        return StateStore()

    async def create(self, *, story: str, options: GameOptions | None = None) -> Session:
        spec = get_story(story)
        session_id = uuid4()
        sid = str(session_id)

        limit = self.settings.event_limit
        presentation = QueuedPresentation(command_limit=limit)
        game = GameInstance(presentation, options=options, store=self._make_store(session_id), history_limit=limit)
        start_scene = spec.build(game)

        def _forward_command(cmd: PresentationCommand) -> None:
            self.hub.publish_nowait(sid, {"kind": "presentation", **_jsonable(cmd.as_payload())})

        def _forward_event(event: GameEvent) -> None:
            self.hub.publish_nowait(sid, {"kind": "event", **_jsonable(event.as_payload())})

        presentation.subscribe(_forward_command)
        game.subscribe(_forward_event)

        session = Session(session_id=session_id, story=spec.name, game=game, presentation=presentation)
        self._sessions[session_id] = session

        start = asyncio.get_running_loop().create_task(game.start(start_scene), name=f"vignette-start-{sid}")
        session.track(start)
        done, _ = await asyncio.wait({start}, timeout=START_WAIT_S)
        if start in done:
            err = start.exception()
            if err is not None:
                await self.close(session_id)
                raise err
        logger.info("Created session %s (story=%s)", sid, spec.name)
        return session

    def get(self, session_id: UUID) -> Session | None:
        return self._sessions.get(session_id)

    def require(self, session_id: UUID) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise ValueError("Session not found")
        return session

    async def close(self, session_id: UUID) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        for task in list(session.tasks):
            task.cancel()
        await session.game.close()
        await self.hub.close_session(str(session_id))
        if self.settings.state_backend == "redis":
            from vignette.infra.redis_state import RedisStateStore

            store = session.game.store
            if isinstance(store, RedisStateStore):
                store.drop()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

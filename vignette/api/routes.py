from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status

from vignette.api.deps import get_sessions
from vignette.api.models import (
    ClickRequest,
    InputResponse,
    SelectRequest,
    SessionCreateRequest,
    SessionSnapshot,
)
from vignette.sessions import Session, SessionStore

router = APIRouter()


def _require(sessions: SessionStore, session_id: UUID) -> Session:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


@router.websocket("/ws/session/{session_id}")
async def session_updates_ws(websocket: WebSocket, session_id: UUID, sessions: SessionStore = Depends(get_sessions)) -> None:
    """Push-only stream of the session's commands and events; input uses the REST routes."""

    sid = str(session_id)
    await sessions.hub.connect(sid, websocket)
    try:
        async for _ in websocket.iter_text():
            pass
    finally:
        await sessions.hub.disconnect(sid, websocket)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/sessions", response_model=SessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session_route(payload: SessionCreateRequest, sessions: SessionStore = Depends(get_sessions)) -> SessionSnapshot:
    try:
        session = await sessions.create(story=payload.story, options=payload.options)
    except (ValueError, LookupError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session_route(session_id: UUID, sessions: SessionStore = Depends(get_sessions)) -> SessionSnapshot:
    return _require(sessions, session_id).snapshot()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_route(session_id: UUID, sessions: SessionStore = Depends(get_sessions)) -> None:
    _require(sessions, session_id)
    await sessions.close(session_id)


@router.post("/sessions/{session_id}/click", response_model=InputResponse)
async def click_route(session_id: UUID, payload: ClickRequest, sessions: SessionStore = Depends(get_sessions)) -> InputResponse:
    """Start the clicked object's handler in the background.

    `accepted` is False when the click is a no-op: object not visible, scene changing,
    or another handler still in flight.
    """

    session = _require(sessions, session_id)
    task = session.game.click_later(payload.object_id)
    if task is None:
        return InputResponse(accepted=False)
    session.track(task)
    return InputResponse(accepted=True)


@router.post("/sessions/{session_id}/ack", response_model=InputResponse)
async def ack_route(session_id: UUID, sessions: SessionStore = Depends(get_sessions)) -> InputResponse:
    session = _require(sessions, session_id)
    return InputResponse(accepted=session.presentation.acknowledge())


@router.post("/sessions/{session_id}/select", response_model=InputResponse)
async def select_route(session_id: UUID, payload: SelectRequest, sessions: SessionStore = Depends(get_sessions)) -> InputResponse:
    session = _require(sessions, session_id)
    return InputResponse(accepted=session.presentation.select(payload.value))

from __future__ import annotations

from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LifecyclePhase(StrEnum):
    idle = "idle"
    entering = "entering"
    active = "active"
    exiting = "exiting"


class GameOptions(BaseModel):
    """Game construction options.

    Everything here is presentation-only: the core hands the whole model to the
    presentation port once at start and never reads the fields itself.
    camelCase keys from the authoring format are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    # Mount target (a DOM selector, a window handle, ...). Opaque.
    container: Any = None

    # Parallax tuning; ranges are the renderer's business.
    max_angle: float = Field(default=8.0, alias="maxAngle")
    lerp_factor: float = Field(default=0.08, alias="lerpFactor")
    perspective: float = 1000.0

    cursor_color: str = Field(default="#ffffff", alias="cursorColor")

    # Dialogue box styling.
    theme: dict[str, Any] = Field(default_factory=dict)


class SessionCreateRequest(BaseModel):
    story: str = Field(default="forest", min_length=1)
    options: GameOptions | None = None


class ClickRequest(BaseModel):
    object_id: str = Field(..., min_length=1)


class SelectRequest(BaseModel):
    value: Any


class InputResponse(BaseModel):
    accepted: bool


class SessionSnapshot(BaseModel):
    session_id: UUID
    story: str
    scene_id: str | None
    phase: LifecyclePhase
    generation: int
    objects: list[dict[str, Any]] = Field(default_factory=list)
    state: dict[str, Any] = Field(default_factory=dict)
    pending_prompt: dict[str, Any] | None = None
    handler_active: bool = False

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "SCENE_ENTERED",
    "SCENE_EXITED",
    "OBJECTS_RENDERED",
    "ACTION_STARTED",
    "ACTION_COMPLETED",
    "ACTION_IGNORED",
    "ACTION_FAILED",
    "ACTION_ABANDONED",
    "STATE_CHANGED",
]


@dataclass(frozen=True, slots=True)
class GameEvent:
    type: EventType
    generation: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, generation: int, payload: dict[str, Any]) -> "GameEvent":
        return GameEvent(type=type, generation=generation, payload=payload, ts=datetime.now(timezone.utc))

    def as_payload(self) -> dict[str, Any]:
        return {"type": self.type, "generation": self.generation, "payload": self.payload, "ts": self.ts.isoformat()}

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from vignette.core.errors import UnknownActionError, UnknownSceneError
from vignette.core.scene import ActionHandler, ActionRef, InlineAction, SceneDefinition

logger = logging.getLogger(__name__)


class SceneRegistry:
    """Scene id -> SceneDefinition.

    Definitions are immutable; re-registering an id replaces the entry for later
    transitions but never touches a scene that is already mounted.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, SceneDefinition] = {}

    def register(self, scene: SceneDefinition) -> SceneDefinition:
        if not scene.scene_id:
            raise ValueError("scene id must not be empty")
        if scene.scene_id in self._by_id:
            logger.warning("Scene %s re-registered; later transitions use the new definition", scene.scene_id)
        self._by_id[scene.scene_id] = scene
        return scene

    def declare(self, scene_id: str, decl: Mapping[str, Any]) -> SceneDefinition:
        return self.register(SceneDefinition.from_declaration(scene_id, decl))

    def get(self, scene_id: str) -> SceneDefinition | None:
        return self._by_id.get(scene_id)

    def require(self, scene_id: str) -> SceneDefinition:
        scene = self._by_id.get(scene_id)
        if scene is None:
            raise UnknownSceneError(scene_id)
        return scene

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._by_id

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)


class ActionRegistry:
    """Action name -> handler. Last registration wins."""

    def __init__(self) -> None:
        self._by_name: dict[str, ActionHandler] = {}

    def register(self, name: str, handler: ActionHandler) -> ActionHandler:
        if not name:
            raise ValueError("action name must not be empty")
        if not callable(handler):
            raise TypeError(f"handler for action '{name}' is not callable")
        self._by_name[name] = handler
        return handler

    def get(self, name: str) -> ActionHandler | None:
        return self._by_name.get(name)

    def resolve(self, ref: ActionRef) -> ActionHandler:
        if isinstance(ref, InlineAction):
            return ref.handler
        handler = self._by_name.get(ref.name)
        if handler is None:
            raise UnknownActionError(ref.name)
        return handler

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

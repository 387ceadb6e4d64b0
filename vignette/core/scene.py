from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from vignette.core.state import StateReader

logger = logging.getLogger(__name__)

# Markup/style/class fragments. The core forwards them verbatim and never parses them.
PresentationFragment = Any
# Percentages ("40%") or absolute units; opaque to the core.
Position = int | float | str

# Called as handler(state, api).
ActionHandler = Callable[..., Awaitable[None] | None]
LifecycleHook = Callable[..., Awaitable[None] | None]
Condition = Callable[[StateReader], bool]


@dataclass(frozen=True, slots=True)
class Layer:
    z: float
    html: PresentationFragment = None
    style: PresentationFragment = None
    class_name: PresentationFragment = None

    def as_payload(self) -> dict[str, Any]:
        return {"z": self.z, "html": self.html, "style": self.style, "className": self.class_name}


@dataclass(frozen=True, slots=True)
class NamedAction:
    name: str

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class InlineAction:
    handler: ActionHandler

    @property
    def label(self) -> str:
        return getattr(self.handler, "__name__", "inline")


ActionRef = NamedAction | InlineAction


def action_ref(value: Any) -> ActionRef:
    """Coerce a declaration's `action` field: a name, a callable, or an existing reference."""

    if isinstance(value, (NamedAction, InlineAction)):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError("action name must not be empty")
        return NamedAction(value)
    if callable(value):
        return InlineAction(value)
    raise TypeError(f"action must be a name or a callable, got {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class ObjectSpec:
    z: float
    x: Position
    y: Position
    action: ActionRef
    id: str | None = None
    label: str | None = None
    html: PresentationFragment = None
    style: PresentationFragment = None
    condition: Condition | None = None

    def is_visible(self, state: StateReader) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition(state))


@dataclass(frozen=True, slots=True)
class RenderedObject:
    """One visible object in a render pass, keyed for click routing."""

    key: str
    spec: ObjectSpec

    def as_payload(self) -> dict[str, Any]:
        s = self.spec
        return {
            "key": self.key,
            "id": s.id,
            "z": s.z,
            "x": s.x,
            "y": s.y,
            "label": s.label,
            "html": s.html,
            "style": s.style,
        }


_LAYER_KEYS = {"z", "style", "html", "className"}
_OBJECT_KEYS = {"id", "z", "x", "y", "label", "html", "style", "action", "condition"}
_SCENE_KEYS = {"layers", "objects", "onEnter", "onExit"}


def _check_keys(kind: str, decl: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(decl) - allowed
    if unknown:
        raise ValueError(f"Unknown {kind} field(s): {', '.join(sorted(unknown))}")


def _layer_from(decl: Mapping[str, Any] | Layer) -> Layer:
    if isinstance(decl, Layer):
        return decl
    _check_keys("layer", decl, _LAYER_KEYS)
    return Layer(z=decl["z"], html=decl.get("html"), style=decl.get("style"), class_name=decl.get("className"))


def _object_from(decl: Mapping[str, Any] | ObjectSpec) -> ObjectSpec:
    if isinstance(decl, ObjectSpec):
        return decl
    _check_keys("object", decl, _OBJECT_KEYS)
    if "action" not in decl:
        raise ValueError("object declaration requires an action")
    return ObjectSpec(
        z=decl.get("z", 0),
        x=decl.get("x", 0),
        y=decl.get("y", 0),
        action=action_ref(decl["action"]),
        id=decl.get("id"),
        label=decl.get("label"),
        html=decl.get("html"),
        style=decl.get("style"),
        condition=decl.get("condition"),
    )


@dataclass(frozen=True, slots=True)
class SceneDefinition:
    scene_id: str
    layers: tuple[Layer, ...] = ()
    objects: tuple[ObjectSpec, ...] = ()
    on_enter: LifecycleHook | None = None
    on_exit: LifecycleHook | None = None

    @staticmethod
    def from_declaration(scene_id: str, decl: Mapping[str, Any]) -> "SceneDefinition":
        """Build a scene from the authoring shape:

            {"layers": [{z, style?, html?, className?}],
             "objects": [{id?, z, x, y, label?, html?, style?, action, condition?}],
             "onEnter": hook?, "onExit": hook?}
        """

        _check_keys("scene", decl, _SCENE_KEYS)
        return SceneDefinition(
            scene_id=scene_id,
            layers=tuple(_layer_from(layer) for layer in decl.get("layers", ())),
            objects=tuple(_object_from(obj) for obj in decl.get("objects", ())),
            on_enter=decl.get("onEnter"),
            on_exit=decl.get("onExit"),
        )

    def object_key(self, index: int) -> str:
        obj = self.objects[index]
        return obj.id if obj.id else f"{self.scene_id}:{index}"


def visible_objects(scene: SceneDefinition, state: StateReader) -> tuple[RenderedObject, ...]:
    """Filter a scene's objects against State, preserving declaration (paint) order.

    A condition that raises is logged and the object treated as hidden for this pass.
    """

    out: list[RenderedObject] = []
    for idx, obj in enumerate(scene.objects):
        try:
            visible = obj.is_visible(state)
        except Exception:
            logger.exception("Visibility condition failed for %s in scene %s", scene.object_key(idx), scene.scene_id)
            visible = False
        if visible:
            out.append(RenderedObject(key=scene.object_key(idx), spec=obj))
    return tuple(out)

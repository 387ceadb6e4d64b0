from __future__ import annotations

import pytest

from vignette.core.scene import (
    InlineAction,
    NamedAction,
    SceneDefinition,
    action_ref,
    visible_objects,
)
from vignette.core.state import StateStore


async def _noop(state, api) -> None:  # noqa: ANN001
    return None


def _scene() -> SceneDefinition:
    return SceneDefinition.from_declaration(
        "forest",
        {
            "layers": [{"z": -100, "className": "sky"}, {"z": -10, "html": "<div/>", "style": "opacity: .5"}],
            "objects": [
                {"id": "chest", "z": -5, "x": "60%", "y": "70%", "action": "openChest"},
                {"z": -5, "x": 10, "y": 20, "action": _noop, "condition": lambda s: s.get("hasKey") is True},
                {"id": "sign", "z": -5, "x": 0, "y": 0, "action": "read", "condition": lambda s: not s.get("hidden")},
            ],
        },
    )


def test_declaration_builds_layers_and_action_references() -> None:
    scene = _scene()

    assert [layer.z for layer in scene.layers] == [-100, -10]
    assert scene.layers[0].class_name == "sky"
    assert scene.layers[1].as_payload() == {"z": -10, "html": "<div/>", "style": "opacity: .5", "className": None}

    assert scene.objects[0].action == NamedAction("openChest")
    assert isinstance(scene.objects[1].action, InlineAction)
    assert scene.objects[1].action.handler is _noop


def test_objects_without_id_get_a_stable_positional_key() -> None:
    scene = _scene()
    assert scene.object_key(0) == "chest"
    assert scene.object_key(1) == "forest:1"


def test_unknown_declaration_fields_are_rejected() -> None:
    with pytest.raises(ValueError) as e:
        SceneDefinition.from_declaration("x", {"objects": [{"z": 0, "x": 0, "y": 0, "action": "a", "onClick": 1}]})
    assert "onClick" in str(e.value)

    with pytest.raises(ValueError):
        SceneDefinition.from_declaration("x", {"object": []})


def test_object_requires_action() -> None:
    with pytest.raises(ValueError):
        SceneDefinition.from_declaration("x", {"objects": [{"z": 0, "x": 0, "y": 0}]})


def test_action_ref_coercion() -> None:
    assert action_ref("go") == NamedAction("go")
    assert action_ref(_noop) == InlineAction(_noop)
    assert action_ref(NamedAction("x")) == NamedAction("x")
    with pytest.raises(TypeError):
        action_ref(42)
    with pytest.raises(ValueError):
        action_ref("  ")


def test_visibility_follows_conditions_and_keeps_declaration_order() -> None:
    scene = _scene()
    state = StateStore()

    assert [o.key for o in visible_objects(scene, state)] == ["chest", "sign"]

    state.set("hasKey", True)
    assert [o.key for o in visible_objects(scene, state)] == ["chest", "forest:1", "sign"]

    state.set("hidden", True)
    assert [o.key for o in visible_objects(scene, state)] == ["chest", "forest:1"]


def test_visibility_is_idempotent_for_unchanged_state() -> None:
    scene = _scene()
    state = StateStore({"hasKey": True})
    assert visible_objects(scene, state) == visible_objects(scene, state)


def test_condition_that_raises_hides_only_that_object() -> None:
    def boom(s) -> bool:  # noqa: ANN001
        raise KeyError("nope")

    scene = SceneDefinition.from_declaration(
        "s",
        {
            "objects": [
                {"id": "a", "z": 0, "x": 0, "y": 0, "action": "x", "condition": boom},
                {"id": "b", "z": 0, "x": 0, "y": 0, "action": "x"},
            ]
        },
    )
    assert [o.key for o in visible_objects(scene, StateStore())] == ["b"]

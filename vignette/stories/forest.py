"""The forest/gate demo story.

Small on purpose: it exercises a named action that narrates and changes scene, an inline
action, a choice, a flash, and an object gated on State.
"""

from __future__ import annotations

from typing import Any

from vignette.actions import BoundState, Capabilities
from vignette.game import GameInstance

START_SCENE = "forest"


async def open_chest(state: BoundState, api: Capabilities) -> None:
    state.set("hasKey", True)
    await api.say([{"speaker": "You", "text": "Inside the chest lies an old iron key."}])
    await api.go("gate")


async def read_signpost(state: BoundState, api: Capabilities) -> None:
    if state.get("hasKey"):
        await api.say("The arrow points east, toward the gate.")
        return
    await api.say(["The sign is weathered.", {"speaker": "Sign", "text": "GATE - KEY REQUIRED"}])


async def open_gate(state: BoundState, api: Capabilities) -> None:
    if state.get("gateOpen"):
        await api.say("The gate already stands open.")
        return
    picked = await api.choice(
        "The gate is locked.",
        [{"text": "Use the iron key", "value": "key"}, {"text": "Leave it", "value": "leave"}],
    )
    # Re-read after the suspension; never trust a value captured before it.
    if picked == "key" and state.get("hasKey"):
        await api.flash("#f5d76e", 250)
        state.set("gateOpen", True)
        await api.say([{"speaker": "Gate", "text": "*clunk*"}])
        await api.reload()
    else:
        await api.say("You step back from the gate.")


async def back_to_forest(state: BoundState, api: Capabilities) -> None:
    await api.go("forest")


async def _count_gate_visits(state: BoundState, api: Capabilities) -> None:
    state.set("gateVisits", int(state.get("gateVisits") or 0) + 1)


def _has_key(s: Any) -> bool:
    return s.get("hasKey") is True


def build(game: GameInstance) -> str:
    game.action("openChest", open_chest)
    game.action("openGate", open_gate)
    game.action("backToForest", back_to_forest)

    game.scene(
        "forest",
        {
            "layers": [
                {"z": -300, "className": "sky"},
                {"z": -150, "className": "trees-far"},
                {"z": -40, "className": "trees-near"},
            ],
            "objects": [
                {
                    "id": "chest",
                    "z": -20,
                    "x": "62%",
                    "y": "70%",
                    "label": "Old chest",
                    "html": "<div class='chest'></div>",
                    "action": "openChest",
                    "condition": lambda s: not _has_key(s),
                },
                {"id": "signpost", "z": -30, "x": "20%", "y": "64%", "label": "Signpost", "action": read_signpost},
                {
                    "id": "path",
                    "z": -10,
                    "x": "88%",
                    "y": "80%",
                    "label": "Path to the gate",
                    "action": lambda state, api: api.go("gate"),
                    "condition": _has_key,
                },
            ],
        },
    )
    game.scene(
        "gate",
        {
            "layers": [{"z": -200, "className": "wall"}, {"z": -60, "className": "gate"}],
            "objects": [
                {"id": "gate", "z": -50, "x": "50%", "y": "50%", "label": "Iron gate", "action": "openGate"},
                {
                    "id": "beyond",
                    "z": -55,
                    "x": "50%",
                    "y": "35%",
                    "label": "Beyond the gate",
                    "action": lambda state, api: api.say("The road goes on."),
                    "condition": lambda s: s.get("gateOpen") is True,
                },
                {"id": "back", "z": -10, "x": "8%", "y": "85%", "label": "Back to the forest", "action": "backToForest"},
            ],
            "onEnter": _count_gate_visits,
        },
    )
    return START_SCENE

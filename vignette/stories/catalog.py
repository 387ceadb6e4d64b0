from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from vignette.game import GameInstance
from vignette.stories import forest


@dataclass(frozen=True, slots=True)
class StorySpec:
    name: str
    title: str
    # Registers scenes/actions on the game and returns the starting scene id.
    build: Callable[[GameInstance], str]


STORIES: dict[str, StorySpec] = {
    "forest": StorySpec("forest", "The Forest Gate", forest.build),
}


def get_story(name: str) -> StorySpec:
    spec = STORIES.get(name)
    if spec is None:
        raise ValueError(f"Unknown story: {name}")
    return spec

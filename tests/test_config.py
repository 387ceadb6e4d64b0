from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from vignette.api.models import GameOptions
from vignette.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("VIGNETTE_LOG_LEVEL", "VIGNETTE_STATE_BACKEND", "VIGNETTE_EVENT_LIMIT", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)


def test_settings_defaults() -> None:
    s = Settings.from_env(load_dotenv_file=False)
    assert s.log_level == logging.INFO
    assert s.state_backend == "memory"
    assert s.redis_url == "redis://localhost:6379/0"
    assert s.event_limit == 1000


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIGNETTE_LOG_LEVEL", "debug")
    monkeypatch.setenv("VIGNETTE_STATE_BACKEND", "Redis")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("VIGNETTE_EVENT_LIMIT", "50")

    s = Settings.from_env(load_dotenv_file=False)
    assert s.log_level == logging.DEBUG
    assert s.state_backend == "redis"
    assert s.redis_url == "redis://cache:6379/2"
    assert s.event_limit == 50


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("VIGNETTE_LOG_LEVEL", "chatty"),
        ("VIGNETTE_STATE_BACKEND", "postgres"),
        ("VIGNETTE_EVENT_LIMIT", "lots"),
        ("VIGNETTE_EVENT_LIMIT", "0"),
    ],
)
def test_settings_reject_bad_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings.from_env(load_dotenv_file=False)


def test_game_options_defaults_and_aliases() -> None:
    opts = GameOptions()
    assert opts.max_angle == 8.0
    assert opts.lerp_factor == 0.08
    assert opts.perspective == 1000

    opts = GameOptions.model_validate({"maxAngle": 12, "lerpFactor": 0.2, "cursorColor": "#222"})
    assert opts.max_angle == 12
    assert opts.cursor_color == "#222"
    assert GameOptions(max_angle=3).max_angle == 3


def test_game_options_pass_tuning_values_through_unchecked() -> None:
    opts = GameOptions.model_validate({"maxAngle": 500, "lerpFactor": 3, "perspective": -1})
    assert opts.max_angle == 500
    assert opts.lerp_factor == 3

    with pytest.raises(ValidationError):
        GameOptions.model_validate({"maxAngle": "steep"})


def test_game_options_reject_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        GameOptions.model_validate({"maxAngel": 12})


@pytest.mark.asyncio
async def test_options_reach_the_presentation_on_start() -> None:
    from vignette.game import GameInstance
    from vignette.presentation import QueuedPresentation

    presentation = QueuedPresentation()
    async with GameInstance(presentation, options={"maxAngle": 4, "container": object()}) as game:
        game.scene("only", {})
        await game.start("only")

    configured = presentation.commands_of("configure")[0].payload
    assert configured["maxAngle"] == 4
    assert "container" not in configured
    assert presentation.options is not None and presentation.options.max_angle == 4

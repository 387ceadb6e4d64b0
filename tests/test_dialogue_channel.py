from __future__ import annotations

import asyncio
import time

import pytest

from vignette.channel import DialogueChannel
from vignette.core.errors import PromptAlreadyPendingError, StaleSessionError
from vignette.presentation import QueuedPresentation


class _Generation:
    def __init__(self) -> None:
        self.value = 1

    def __call__(self) -> int:
        return self.value


@pytest.fixture()
def generation() -> _Generation:
    return _Generation()


@pytest.fixture()
def channel(presentation: QueuedPresentation, generation: _Generation) -> DialogueChannel:
    return DialogueChannel(presentation, current_generation=generation)


@pytest.mark.asyncio
async def test_say_shows_lines_one_at_a_time(channel: DialogueChannel, presentation: QueuedPresentation, wait_for) -> None:  # noqa: ANN001
    task = asyncio.create_task(channel.say(["one", {"speaker": "Owl", "text": "two"}], generation=1))

    await wait_for(lambda: presentation.waiting_for == "line")
    assert [c.payload["text"] for c in presentation.commands_of("show_line")] == ["one"]
    assert channel.pending is not None and channel.pending.kind == "line"

    presentation.acknowledge()
    await wait_for(lambda: len(presentation.commands_of("show_line")) == 2)
    assert not task.done()

    presentation.acknowledge()
    await task
    assert channel.pending is None


@pytest.mark.asyncio
async def test_second_prompt_while_one_is_open_is_refused(
    channel: DialogueChannel, presentation: QueuedPresentation, wait_for  # noqa: ANN001
) -> None:
    task = asyncio.create_task(channel.say("first", generation=1))
    await wait_for(lambda: presentation.waiting_for == "line")

    with pytest.raises(PromptAlreadyPendingError):
        await channel.say("second", generation=1)
    with pytest.raises(PromptAlreadyPendingError):
        await channel.choice("Pick", ["a"], generation=1)

    presentation.acknowledge()
    await task
    # Free again once the first prompt resolved.
    follow_up = asyncio.create_task(channel.choice("Pick", [("A", 1)], generation=1))
    await wait_for(lambda: presentation.waiting_for == "choice")
    presentation.select(1)
    assert await follow_up == 1


@pytest.mark.asyncio
async def test_choice_rejects_empty_options(channel: DialogueChannel) -> None:
    with pytest.raises(ValueError):
        await channel.choice("Nothing to pick", [], generation=1)
    assert channel.pending is None


@pytest.mark.asyncio
async def test_superseded_prompt_raises_stale_session(
    channel: DialogueChannel, presentation: QueuedPresentation, generation: _Generation, wait_for  # noqa: ANN001
) -> None:
    task = asyncio.create_task(channel.choice("Stay?", ["yes", "no"], generation=1))
    await wait_for(lambda: presentation.waiting_for == "choice")

    generation.value = 2
    channel.supersede(2)

    with pytest.raises(StaleSessionError) as ei:
        await task
    assert ei.value.generation == 1
    assert ei.value.current == 2
    assert channel.pending is None
    assert presentation.commands_of("dismiss_prompt")[-1].payload == {"kind": "choice"}
    # Late input for the discarded prompt goes nowhere.
    assert presentation.select("yes") is False


@pytest.mark.asyncio
async def test_supersede_keeps_prompts_of_the_current_generation(
    channel: DialogueChannel, presentation: QueuedPresentation, wait_for  # noqa: ANN001
) -> None:
    task = asyncio.create_task(channel.say("still here", generation=1))
    await wait_for(lambda: presentation.waiting_for == "line")

    channel.supersede(1)
    assert channel.pending is not None

    presentation.acknowledge()
    await task


@pytest.mark.asyncio
async def test_stale_caller_cannot_open_a_prompt(
    channel: DialogueChannel, presentation: QueuedPresentation, generation: _Generation
) -> None:
    generation.value = 3
    with pytest.raises(StaleSessionError):
        await channel.say("too late", generation=2)
    assert presentation.commands_of("show_line") == []
    # The failed attempt does not leave the channel claimed.
    with pytest.raises(StaleSessionError):
        await channel.say("still too late", generation=2)


@pytest.mark.asyncio
async def test_flash_waits_at_least_its_duration(channel: DialogueChannel, presentation: QueuedPresentation) -> None:
    started = time.monotonic()
    await channel.flash("#fff", 50, generation=1)
    elapsed = time.monotonic() - started

    assert elapsed >= 0.045
    assert presentation.commands_of("flash")[-1].payload == {"color": "#fff", "duration_ms": 50}


@pytest.mark.asyncio
async def test_flash_rejects_negative_duration(channel: DialogueChannel) -> None:
    with pytest.raises(ValueError):
        await channel.flash("red", -1, generation=1)


@pytest.mark.asyncio
async def test_flash_survives_a_failing_port(
    channel: DialogueChannel, presentation: QueuedPresentation, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def broken_flash(color: str, duration_ms: int) -> None:
        raise RuntimeError("no canvas")

    monkeypatch.setattr(presentation, "flash", broken_flash)

    with caplog.at_level("ERROR"):
        await channel.flash("red", 10, generation=1)

    assert "Presentation port failed during flash" in caplog.text


@pytest.mark.asyncio
async def test_flash_across_a_transition_reports_stale(channel: DialogueChannel, generation: _Generation) -> None:
    task = asyncio.create_task(channel.flash("red", 30, generation=1))
    await asyncio.sleep(0.005)
    generation.value = 2

    with pytest.raises(StaleSessionError):
        await task


@pytest.mark.asyncio
async def test_presentation_records_commands_past_a_failing_listener(caplog: pytest.LogCaptureFixture) -> None:
    presentation = QueuedPresentation(realtime_flash=False)
    forwarded: list[str] = []

    def broken(cmd) -> None:  # noqa: ANN001
        raise RuntimeError("socket gone")

    presentation.subscribe(broken)
    presentation.subscribe(lambda cmd: forwarded.append(cmd.type))
    with caplog.at_level("ERROR"):
        await presentation.unmount_all()

    assert [c.type for c in presentation.commands] == ["unmount_all"]
    assert forwarded == ["unmount_all"]
    assert "Presentation listener failed on unmount_all" in caplog.text


@pytest.mark.asyncio
async def test_presentation_keeps_only_the_most_recent_commands() -> None:
    presentation = QueuedPresentation(realtime_flash=False, command_limit=3)
    for _ in range(5):
        await presentation.unmount_all()
    await presentation.mount_layers([])

    assert len(presentation.commands) == 3
    assert [c.type for c in presentation.commands] == ["unmount_all", "unmount_all", "mount_layers"]

    with pytest.raises(ValueError):
        QueuedPresentation(command_limit=0)

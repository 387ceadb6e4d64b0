from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

PromptKind = Literal["line", "choice"]


@dataclass(frozen=True, slots=True)
class DialogueLine:
    text: str
    speaker: str | None = None

    def as_payload(self) -> dict[str, Any]:
        return {"speaker": self.speaker, "text": self.text}


@dataclass(frozen=True, slots=True)
class ChoiceOption:
    text: str
    value: Any

    def as_payload(self) -> dict[str, Any]:
        return {"text": self.text, "value": self.value}


def as_lines(lines: Iterable[DialogueLine | Mapping[str, Any] | str] | str) -> list[DialogueLine]:
    """Normalize `say()` input. A bare string is a single narrator line."""

    if isinstance(lines, str):
        lines = [lines]
    out: list[DialogueLine] = []
    for item in lines:
        if isinstance(item, DialogueLine):
            out.append(item)
        elif isinstance(item, str):
            out.append(DialogueLine(text=item))
        elif isinstance(item, Mapping):
            if "text" not in item:
                raise ValueError("dialogue line requires 'text'")
            out.append(DialogueLine(text=str(item["text"]), speaker=item.get("speaker")))
        else:
            raise TypeError(f"unsupported dialogue line: {item!r}")
    return out


def as_options(options: Iterable[ChoiceOption | Mapping[str, Any] | tuple[str, Any] | str]) -> list[ChoiceOption]:
    out: list[ChoiceOption] = []
    for item in options:
        if isinstance(item, ChoiceOption):
            out.append(item)
        elif isinstance(item, str):
            out.append(ChoiceOption(text=item, value=item))
        elif isinstance(item, Mapping):
            if "text" not in item:
                raise ValueError("choice option requires 'text'")
            out.append(ChoiceOption(text=str(item["text"]), value=item.get("value", item["text"])))
        elif isinstance(item, tuple) and len(item) == 2:
            out.append(ChoiceOption(text=str(item[0]), value=item[1]))
        else:
            raise TypeError(f"unsupported choice option: {item!r}")
    if not out:
        raise ValueError("choice requires at least one option")
    return out


@dataclass(slots=True)
class PendingPrompt:
    """The one outstanding dialogue line or choice menu.

    `task` wraps the presentation call that completes on the player's response.
    `superseded` is set when a scene transition discards the prompt.
    """

    kind: PromptKind
    payload: dict[str, Any]
    generation: int
    task: asyncio.Task[Any] | None = None
    superseded: bool = field(default=False)

    def supersede(self) -> None:
        self.superseded = True
        if self.task is not None and not self.task.done():
            self.task.cancel()

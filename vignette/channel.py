from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable, Mapping
from typing import Any

from vignette.core.errors import PromptAlreadyPendingError, StaleSessionError
from vignette.core.prompts import (
    ChoiceOption,
    DialogueLine,
    PendingPrompt,
    PromptKind,
    as_lines,
    as_options,
)
from vignette.presentation import PresentationPort, guarded

logger = logging.getLogger(__name__)


class DialogueChannel:
    """Suspend/resume point between handlers and the player.

    Rules:
      - single-flight: one `say` (all of its lines) or one `choice` at a time; a second
        call while one is open raises PromptAlreadyPendingError.
      - every suspension checks the caller's generation before and after waiting. When a
        scene transition supersedes the prompt, the waiting handler gets StaleSessionError
        instead of a result, so it can neither mutate State nor draw into the new scene.
    """

    def __init__(self, port: PresentationPort, *, current_generation: Callable[[], int]) -> None:
        self._port = port
        self._current_generation = current_generation
        self._pending: PendingPrompt | None = None
        self._claim: object | None = None

    @property
    def pending(self) -> PendingPrompt | None:
        return self._pending

    def ensure_current(self, generation: int) -> None:
        current = self._current_generation()
        if generation != current:
            raise StaleSessionError(generation, current)

    async def say(self, lines: Iterable[DialogueLine | Mapping[str, Any] | str] | str, *, generation: int) -> None:
        items = as_lines(lines)
        token = self._acquire("say")
        try:
            for line in items:
                await self._prompt("line", line.as_payload(), generation, lambda line=line: self._port.show_line(line))
        finally:
            self._release(token)

    async def choice(
        self,
        prompt: str,
        options: Iterable[ChoiceOption | Mapping[str, Any] | tuple[str, Any] | str],
        *,
        generation: int,
    ) -> Any:
        opts = as_options(options)
        token = self._acquire("choice")
        try:
            payload = {"prompt": prompt, "options": [o.as_payload() for o in opts]}
            return await self._prompt("choice", payload, generation, lambda: self._port.show_choice(prompt, opts))
        finally:
            self._release(token)

    async def flash(self, color: str, duration_ms: int, *, generation: int) -> None:
        """Resolves no earlier than `duration_ms`, whatever the port does."""

        if duration_ms < 0:
            raise ValueError("duration_ms must be >= 0")
        self.ensure_current(generation)
        await asyncio.gather(
            guarded("flash", self._port.flash(color, duration_ms)),
            asyncio.sleep(duration_ms / 1000),
        )
        self.ensure_current(generation)

    def supersede(self, generation: int) -> None:
        """Discard a prompt that belongs to a generation older than `generation`."""

        prompt = self._pending
        if prompt is None or prompt.generation >= generation:
            return
        logger.debug("Superseding %s prompt from generation %d", prompt.kind, prompt.generation)
        self._pending = None
        self._claim = None
        prompt.supersede()

    def _acquire(self, what: str) -> object:
        if self._claim is not None:
            raise PromptAlreadyPendingError(f"{what}() called while another prompt is still pending")
        token = object()
        self._claim = token
        return token

    def _release(self, token: object) -> None:
        if self._claim is token:
            self._claim = None

    async def _prompt(
        self,
        kind: PromptKind,
        payload: dict[str, Any],
        generation: int,
        show: Callable[[], Coroutine[Any, Any, Any]],
    ) -> Any:
        self.ensure_current(generation)
        prompt = PendingPrompt(kind=kind, payload=payload, generation=generation)
        prompt.task = asyncio.ensure_future(show())
        self._pending = prompt
        try:
            result = await prompt.task
        except asyncio.CancelledError:
            if prompt.superseded:
                raise StaleSessionError(generation, self._current_generation()) from None
            raise
        finally:
            if self._pending is prompt:
                self._pending = None
        self.ensure_current(generation)
        return result

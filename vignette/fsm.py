from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from vignette.api.models import LifecyclePhase
from vignette.core.errors import SceneLifecycleError


class SceneFSM(StateMachine):
    """Scene lifecycle guard.

    idle -> entering -> active -> exiting -> entering -> active ...

    `exiting -> entering` is the transient out/in pair of a scene change. There is no
    final state; a game runs until the host tears it down. The controller does the work,
    this machine only refuses out-of-order steps.
    """

    idle = State(LifecyclePhase.idle.value, value=LifecyclePhase.idle.value, initial=True)
    entering = State(LifecyclePhase.entering.value, value=LifecyclePhase.entering.value)
    active = State(LifecyclePhase.active.value, value=LifecyclePhase.active.value)
    exiting = State(LifecyclePhase.exiting.value, value=LifecyclePhase.exiting.value)

    begin_start = idle.to(entering)
    settle = entering.to(active)
    begin_exit = active.to(exiting)
    begin_enter = exiting.to(entering)

    @property
    def phase(self) -> LifecyclePhase:
        return LifecyclePhase(str(self.current_state.value))

    def step(self, event: str) -> None:
        try:
            self.send(event)
        except TransitionNotAllowed as e:
            raise SceneLifecycleError(f"Cannot {event} while {self.phase.value}") from e

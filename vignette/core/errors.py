from __future__ import annotations


class VignetteError(Exception):
    pass


class UnknownSceneError(VignetteError, LookupError):
    def __init__(self, scene_id: str) -> None:
        super().__init__(f"Unknown scene: {scene_id}")
        self.scene_id = scene_id


class UnknownActionError(VignetteError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown action: {name}")
        self.name = name


class HandlerExecutionError(VignetteError):
    """An authored handler (or lifecycle hook) raised mid-execution.

    `label` names what was running (action name, `inline`, or `<scene>.on_enter`).
    The original exception is chained as `__cause__`.
    """

    def __init__(self, label: str, cause: BaseException) -> None:
        super().__init__(f"Handler '{label}' failed: {cause!r}")
        self.label = label


class PromptAlreadyPendingError(VignetteError, RuntimeError):
    pass


class StaleSessionError(VignetteError):
    """Raised inside a handler whose scene session has been superseded by a transition."""

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"Session generation {generation} superseded by {current}")
        self.generation = generation
        self.current = current


class SceneLifecycleError(VignetteError, RuntimeError):
    pass


class StateValueError(VignetteError, TypeError):
    """A State value the persistent backend cannot store and read back unchanged."""

    def __init__(self, key: str, value: object) -> None:
        super().__init__(f"State value for '{key}' cannot be persisted: {type(value).__name__}")
        self.key = key

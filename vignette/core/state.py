from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any, Protocol

StateListener = Callable[[str, Any, Any], None]

logger = logging.getLogger(__name__)


class StateReader(Protocol):
    """The read side visibility conditions see."""

    def get(self, key: str) -> Any: ...

    def has(self, key: str) -> bool: ...


class StateStore:
    """Global key/value game state with change notification.

    Contract:
      - unknown keys read as None and never raise; `has()` tells "unset" apart from "set to None".
      - every mutation is visible to the next read.
      - the store never triggers a re-render; callers ask for `reload()` explicitly.

    Listeners are called as `listener(key, old, new)` after each mutation. A listener
    that raises is logged; the mutation it was told about stands.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._listeners: list[StateListener] = []

    # Storage primitives; RedisStateStore overrides these four.
    def _read(self, key: str) -> tuple[bool, Any]:
        if key in self._data:
            return True, self._data[key]
        return False, None

    def _write(self, key: str, value: Any) -> None:
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)

    def _items(self) -> dict[str, Any]:
        return dict(self._data)

    def get(self, key: str) -> Any:
        return self._read(key)[1]

    def has(self, key: str) -> bool:
        return self._read(key)[0]

    def set(self, key: str, value: Any) -> None:
        old = self.get(key)
        self._write(key, value)
        self._notify(key, old, value)

    def toggle(self, key: str) -> bool:
        new = not bool(self.get(key))
        self.set(key, new)
        return new

    def delete(self, key: str) -> None:
        present, old = self._read(key)
        if not present:
            return
        self._remove(key)
        self._notify(key, old, None)

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._items()))

    def snapshot(self) -> dict[str, Any]:
        return self._items()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, key: str, old: Any, new: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, old, new)
            except Exception:
                logger.exception("State listener failed for %s", key)

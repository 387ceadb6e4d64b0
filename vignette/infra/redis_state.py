from __future__ import annotations

import json
from typing import Any

import redis

from vignette.core.errors import StateValueError
from vignette.core.state import StateStore

STATE_KEY_PREFIX = "vignette:state:"  # + {game id}

# Marks an encoded container JSON has no native form for.
_TAG = "__vignette__"

_SCALARS = (type(None), bool, int, float, str)


def state_key(game_id: str) -> str:
    return f"{STATE_KEY_PREFIX}{game_id}"


def _encode(value: Any) -> Any:
    """Map a State value onto JSON, tagging tuples, sets and non-string-keyed dicts.

    Exact types only: subclasses (enums, named tuples, ...) would not read back as
    themselves, so they are rejected along with everything else JSON cannot hold.
    """

    kind = type(value)
    if kind in _SCALARS:
        return value
    if kind is list:
        return [_encode(v) for v in value]
    if kind is tuple:
        return {_TAG: "tuple", "items": [_encode(v) for v in value]}
    if kind is set or kind is frozenset:
        return {_TAG: kind.__name__, "items": [_encode(v) for v in value]}
    if kind is dict:
        if _TAG not in value and all(type(k) is str for k in value):
            return {k: _encode(v) for k, v in value.items()}
        return {_TAG: "dict", "items": [[_encode(k), _encode(v)] for k, v in value.items()]}
    raise TypeError(kind.__name__)


def _decode(raw: Any) -> Any:
    if isinstance(raw, list):
        return [_decode(v) for v in raw]
    if not isinstance(raw, dict):
        return raw
    tag = raw.get(_TAG)
    if tag is None:
        return {k: _decode(v) for k, v in raw.items()}
    items = raw["items"]
    if tag == "tuple":
        return tuple(_decode(v) for v in items)
    if tag == "set":
        return {_decode(v) for v in items}
    if tag == "frozenset":
        return frozenset(_decode(v) for v in items)
    return {_decode(k): _decode(v) for k, v in items}


class RedisStateStore(StateStore):
    """State Store kept in one Redis hash per game (field = key, value = JSON).

    Same contract as the in-memory store, so a game's State outlives the process hosting it.
    Values round-trip exactly when built from None, bool, int, float, str, list, tuple,
    set, frozenset and dict. Anything else raises StateValueError from `set()` before
    the hash or any listener is touched.
    """

    def __init__(self, *, r: redis.Redis, game_id: str) -> None:
        super().__init__()
        self._r = r
        self._key = state_key(game_id)

    @property
    def key(self) -> str:
        return self._key

    def drop(self) -> None:
        """Delete the whole hash; the game's State is gone for good."""

        self._r.delete(self._key)

    def _read(self, key: str) -> tuple[bool, Any]:
        raw = self._r.hget(self._key, key)
        if raw is None:
            return False, None
        return True, _decode(json.loads(raw))

    def _write(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(_encode(value))
        except (TypeError, ValueError, RecursionError) as e:
            raise StateValueError(key, value) from e
        self._r.hset(self._key, key, encoded)

    def _remove(self, key: str) -> None:
        self._r.hdel(self._key, key)

    def _items(self) -> dict[str, Any]:
        raw: dict[str, str] = self._r.hgetall(self._key)  # type: ignore[assignment]
        return {k: _decode(json.loads(v)) for k, v in raw.items()}

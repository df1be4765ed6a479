#!/usr/bin/env python3
"""
Scope Key Generation

Implements:
- scope_key(params) -> str | None
- normalize_params(params, key_name) -> dict
- keys_match(a, b) -> bool

A repository whose collection is not parameterized keeps one cached list
under DEFAULT_SCOPE. A parameterized repository keeps one cached list per
combination of its (up to four) collection key values:

    decorator(str(params[key1])) ~~ params[key2] ~~ params[key3] ~~ params[key4]

When params carry no value for the first key, the scope is undefined.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union


DEFAULT_SCOPE = "defaultCachedList"
SEPARATOR = "~~"
MAX_COLLECTION_KEYS = 4

ScopeParams = Union[str, int, float, Mapping[str, Any], None]


def _present(value: Any) -> bool:
    return value is not None and value != ""


def keys_match(a: Any, b: Any) -> bool:
    """Item keys match by value; ``5`` and ``"5"`` are the same key."""
    if not _present(a) or not _present(b):
        return False
    return a == b or str(a) == str(b)


def normalize_params(params: ScopeParams, key_name: Optional[str]) -> Dict[str, Any]:
    """Turn a scalar parameter into ``{key_name: value}``; copy mappings."""
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return dict(params)
    if isinstance(params, (str, int, float)) and not isinstance(params, bool):
        return {key_name: params} if key_name else {}
    raise TypeError(f"unsupported params type: {type(params).__name__}")


class ScopeKeyGenerator:
    """Derives the cache scope key from operation params."""

    def __init__(
        self,
        collection_key_names: Sequence[str] = (),
        decorator: Optional[Callable[[Any], Any]] = None,
    ):
        names = [n for n in collection_key_names if n]
        if len(names) > MAX_COLLECTION_KEYS:
            raise ValueError(f"at most {MAX_COLLECTION_KEYS} collection keys are supported, got {len(names)}")
        self.collection_key_names = tuple(names)
        self.decorator = decorator

    @property
    def parameterized(self) -> bool:
        return bool(self.collection_key_names)

    def scope_key(self, params: Optional[Mapping[str, Any]]) -> Optional[str]:
        """
        Return the scope key for params, or None when the scope is undefined.

        Trailing keys contribute their string value or nothing, each behind
        the separator, so the key shape is stable for a repository.
        """
        if not self.collection_key_names:
            return DEFAULT_SCOPE

        params = params or {}
        first = params.get(self.collection_key_names[0])
        if first is None:
            return None

        key = str(first)
        if self.decorator:
            key = str(self.decorator(key))
        for name in self.collection_key_names[1:]:
            value = params.get(name)
            key += SEPARATOR + (str(value) if _present(value) else "")

        return key or DEFAULT_SCOPE

    def scope_params(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """The subset of params that select a collection."""
        return {name: params.get(name) for name in self.collection_key_names}

"""
Key canonicalization.

Turns a logical key (one token or an ordered sequence of tokens) into the
single ``lc.``-prefixed string used to address every backend. The string
format is shared with caches written by earlier deployments, so the
serialization rules below must stay byte-for-byte stable.
"""

import dataclasses
import json
from collections.abc import Mapping, Set
from typing import Any, Callable, Optional, Sequence, Union

from pydantic import BaseModel

from ...constants import NAMESPACE_MARKER, KEY_SEPARATOR
from .value_objects import CacheKey

KeySerializer = Callable[[Any], str]
KeyLike = Union[CacheKey, str, int, float, bool, None, Sequence[Any], Mapping]


def _json_default(value: Any) -> Any:
    if isinstance(value, (Set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(
        f"Cannot serialize key part of type {type(value).__name__}; "
        "pass a serializer to canonicalize()"
    )


def json_serializer(value: Any) -> str:
    """Compact JSON with non-ASCII kept verbatim and ``/`` escaped as ``\\/``."""
    encoded = json.dumps(
        value, ensure_ascii=False, separators=(",", ":"), default=_json_default
    )
    return encoded.replace("/", "\\/")


def _is_compound(part: Any) -> bool:
    if isinstance(part, (str, bytes)):
        return False
    return isinstance(part, (Mapping, Set, list, tuple, BaseModel)) or (
        dataclasses.is_dataclass(part) and not isinstance(part, type)
    )


class KeyCanonicalizer:
    """Serializes key parts and joins them under the namespace marker."""

    def __init__(self, serializer: Optional[KeySerializer] = None):
        self.serializer = serializer or json_serializer

    def part(self, token: Any) -> str:
        """Serialize a single key part."""
        # bool before everything else: bool is an int subclass
        if isinstance(token, bool):
            return "true" if token else "false"
        if token is None:
            return ""
        if _is_compound(token):
            return self.serializer(token)
        if isinstance(token, bytes):
            return token.decode("utf-8")
        return str(token)

    def __call__(self, key: KeyLike) -> CacheKey:
        if isinstance(key, CacheKey):
            return key
        if isinstance(key, (list, tuple)):
            body = KEY_SEPARATOR.join(self.part(token) for token in key)
        else:
            body = self.part(key)
        return CacheKey(f"{NAMESPACE_MARKER}{KEY_SEPARATOR}{body}")


_default_canonicalizer = KeyCanonicalizer()


def canonicalize(key: KeyLike, serializer: Optional[KeySerializer] = None) -> CacheKey:
    """Return the canonical cache key for ``key``.

    Args:
        key: A single token or an ordered list/tuple of tokens. Order is
            significant and never normalized.
        serializer: Serializer for compound parts (mappings, sequences,
            sets, models). Defaults to :func:`json_serializer`.

    Returns:
        CacheKey whose value is ``"lc.<part>.<part>..."``
    """
    if serializer is None:
        return _default_canonicalizer(key)
    return KeyCanonicalizer(serializer)(key)

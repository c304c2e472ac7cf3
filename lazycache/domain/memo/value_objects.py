"""
Memoization Value Objects

Immutable value objects for the memoization domain.
Provides type safety for keys, tags, TTLs and backend selection.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Union

from ...constants import NAMESPACE_MARKER, KEY_SEPARATOR


class Backend(str, Enum):
    """Storage strategy selectable per memoize call."""

    LOCAL = "local"  # per memoizer mirror only
    REGISTRY = "registry"  # process-wide nested registry
    CACHE = "cache"  # external shared cache with TTL and tags
    SESSION = "session"  # per-user session store

    @classmethod
    def parse(cls, value: Union["Backend", str]) -> "Backend":
        """Accept enum members and their string values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown backend '{value}', expected one of: "
                f"{', '.join(member.value for member in cls)}"
            ) from None


class ErrorPolicy(str, Enum):
    """What to do when a shared cache or session capability fails."""

    LOG = "log"  # log and call the producer directly, without caching
    RAISE = "raise"  # propagate a BackendError

    @classmethod
    def parse(cls, value: Union["ErrorPolicy", str, bool]) -> "ErrorPolicy":
        """Accept enum members, their string values, or a legacy ``catch`` flag."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.LOG if value else cls.RAISE
        return cls(str(value).strip().lower())


class _MissType(Enum):
    MISS = "MISS"

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


# Returned by backends to signal "no entry". Never equal to a stored value.
MISS = _MissType.MISS


@dataclass(frozen=True)
class CacheKey:
    """
    Canonical cache key value object.

    Always carries the namespace marker prefix; the same logical key
    produces the same value in every process.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value.startswith(NAMESPACE_MARKER + KEY_SEPARATOR):
            raise ValueError(
                f"Cache key must start with '{NAMESPACE_MARKER}{KEY_SEPARATOR}'"
            )

    @property
    def body(self) -> str:
        """Key without the namespace marker."""
        return self.value[len(NAMESPACE_MARKER) + len(KEY_SEPARATOR):]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CacheTag:
    """
    Cache tag value object for invalidation groups.

    Allows invalidating multiple shared cache entries at once. Any
    non-empty string is a valid tag.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate tag value."""
        if not self.value:
            raise ValueError("Cache tag cannot be empty")

    @classmethod
    def user(cls, user_id: Any) -> "CacheTag":
        """Create user-specific cache tag."""
        return cls(f"user:{user_id}")

    def __str__(self) -> str:
        return self.value


def normalize_tags(tags: Union[None, str, CacheTag, Iterable[Union[str, CacheTag]]]) -> FrozenSet[CacheTag]:
    """Turn one tag or a collection of tags into a set of CacheTag objects."""
    if tags is None:
        return frozenset()
    if isinstance(tags, (str, CacheTag)):
        tags = [tags]
    return frozenset(
        tag if isinstance(tag, CacheTag) else CacheTag(str(tag)) for tag in tags
    )


@dataclass(frozen=True)
class TTL:
    """
    Time To Live hint for shared cache entries.

    Zero means "no expiry"; the memoizer never expires entries itself and
    only the shared cache receives the value.
    """

    seconds: int

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds < 0:
            raise ValueError("TTL cannot be negative")

    @classmethod
    def minutes(cls, minutes: int) -> "TTL":
        """Create TTL from minutes."""
        return cls(minutes * 60)

    @classmethod
    def hours(cls, hours: int) -> "TTL":
        """Create TTL from hours."""
        return cls(hours * 3600)

    @classmethod
    def days(cls, days: int) -> "TTL":
        """Create TTL from days."""
        return cls(days * 86400)

    @property
    def expires(self) -> bool:
        return self.seconds > 0

    def __str__(self) -> str:
        return f"{self.seconds}s"


@dataclass(frozen=True)
class TagDependency:
    """Tags a shared cache entry depends on."""

    tags: FrozenSet[CacheTag]

    @classmethod
    def of(cls, tags: Union[None, str, CacheTag, Iterable[Union[str, CacheTag]]]) -> Optional["TagDependency"]:
        """Build a dependency, or None when there are no tags."""
        normalized = normalize_tags(tags)
        if not normalized:
            return None
        return cls(normalized)

    @property
    def names(self) -> list:
        """Sorted tag names."""
        return sorted(tag.value for tag in self.tags)


@dataclass(frozen=True)
class MemoEntry:
    """A value as handed to a backend for storage."""

    key: CacheKey
    value: Any
    ttl: TTL = field(default_factory=lambda: TTL(0))
    dependency: Optional[TagDependency] = None


@dataclass(frozen=True)
class BackendResult:
    """
    Outcome of one backend round trip.

    Exactly one of three states: hit (``value`` set), miss, or failure
    (``error`` set). The memoizer decides how to react to failures.
    """

    value: Any = MISS
    error: Optional[Exception] = None

    @classmethod
    def hit(cls, value: Any) -> "BackendResult":
        return cls(value=value)

    @classmethod
    def miss(cls) -> "BackendResult":
        return cls()

    @classmethod
    def failure(cls, error: Exception) -> "BackendResult":
        return cls(error=error)

    @property
    def is_hit(self) -> bool:
        return self.error is None and self.value is not MISS

    @property
    def is_failure(self) -> bool:
        return self.error is not None

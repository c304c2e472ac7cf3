"""
Unit tests for the Memoizer service.
"""

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from lazycache.core.config import Settings
from lazycache.domain.memo.exceptions import (
    BackendError,
    BackendUnavailableError,
    ReentrantMemoizationError,
)
from lazycache.domain.memo.interfaces import SharedCacheBackend
from lazycache.domain.memo.value_objects import MISS, Backend, CacheKey, TagDependency
from lazycache.infrastructure.backends import MappingSession
from lazycache.services.memo import MemoContext, Memoizer, configure, memoizer


class Counter:
    """Producer double counting its calls."""

    def __init__(self, value="value"):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


def failing_cache(**side_effects):
    cache = MagicMock(spec=SharedCacheBackend)
    cache.get.return_value = MISS
    for name, effect in side_effects.items():
        getattr(cache, name).side_effect = effect
    return cache


class TestLocalBackend:
    """Test memoization in the memoizer's own mirror."""

    def test_producer_called_once(self, context):
        memo = Memoizer(context=context)
        producer = Counter()

        assert memo.memoize("k", producer, Backend.LOCAL) == "value"
        assert memo.memoize("k", producer, Backend.LOCAL) == "value"
        assert producer.calls == 1
        assert memo.entry_count() == 1
        assert memo.all_entries() == {"lc.k": "value"}

    def test_memoizers_are_isolated(self, context):
        producer = Counter()
        Memoizer(context=context).memoize_local("k", producer)
        Memoizer(context=context).memoize_local("k", producer)

        assert producer.calls == 2
        assert context.registry.snapshot() == {}

    @pytest.mark.parametrize("value", [None, False, 0, "", []])
    def test_falsy_values_memoized(self, context, value):
        memo = Memoizer(context=context)
        producer = Counter(value)

        memo.memoize_local("k", producer)
        assert memo.memoize_local("k", producer) == value
        assert producer.calls == 1

    def test_producer_error_propagates_and_retries(self, context):
        memo = Memoizer(context=context)

        def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            memo.memoize_local("k", broken)

        assert memo.entry_count() == 0
        assert memo.memoize_local("k", lambda: 1) == 1

    def test_string_backend_name(self, context):
        memo = Memoizer(context=context)
        memo.memoize("k", lambda: 1, "LOCAL")
        assert memo.entry_count() == 1

    def test_unknown_backend(self, context):
        with pytest.raises(ValueError, match="Unknown backend"):
            Memoizer(context=context).memoize("k", lambda: 1, "disk")


class TestRegistryBackend:
    """Test process-wide memoization."""

    def test_shared_between_memoizers(self, context):
        producer = Counter()
        first = Memoizer(context=context)
        second = Memoizer(context=context)

        first.memoize(["user", 42], producer, Backend.REGISTRY)
        assert second.memoize(["user", 42], producer, Backend.REGISTRY) == "value"
        assert producer.calls == 1
        assert context.registry.snapshot() == {"lc": {"user": {"42": "value"}}}

    def test_is_the_default_backend(self, context):
        Memoizer(context=context).memoize("k", lambda: 1)
        assert context.registry.get("lc.k") == 1

    def test_default_backend_from_settings(self, context):
        settings = Settings(LAZYCACHE_DEFAULT_BACKEND="local")
        Memoizer(context=context, settings=settings).memoize("k", lambda: 1)

        assert context.registry.snapshot() == {}

    def test_prefix_key_reads_subtree(self, context):
        """A key that prefixes another key resolves to the nested subtree."""
        memo = Memoizer(context=context)
        memo.memoize(["user", 42], lambda: "ann", Backend.REGISTRY)
        producer = Counter()

        result = Memoizer(context=context).memoize(["user"], producer, Backend.REGISTRY)

        assert result == {"42": "ann"}
        assert producer.calls == 0

    def test_ttl_ignored(self, context):
        memo = Memoizer(context=context)
        assert memo.memoize("k", lambda: 1, Backend.REGISTRY, ttl=86400 * 400) == 1
        assert memo.memoize("l", lambda: 2, Backend.LOCAL, ttl=86400 * 400) == 2


class TestSharedCacheBackend:
    """Test memoization in the shared cache."""

    def test_shared_between_memoizers(self, context, shared_cache):
        producer = Counter()
        Memoizer(context=context).memoize_in_cache("k", producer, ttl=60)
        result = Memoizer(context=context).memoize_in_cache("k", producer, ttl=60)

        assert result == "value"
        assert producer.calls == 1
        assert shared_cache.get("lc.k") == "value"

    def test_ttl_and_tags_forwarded(self):
        cache = failing_cache()
        context = MemoContext(shared_cache=cache)

        Memoizer(context=context).memoize("k", lambda: 1, Backend.CACHE, ttl=60, tags="user:1")

        cache.set.assert_called_once_with("lc.k", 1, 60, TagDependency.of(["user:1"]))

    def test_default_ttl(self):
        cache = failing_cache()
        settings = Settings(LAZYCACHE_DEFAULT_TTL=120)

        Memoizer(context=MemoContext(shared_cache=cache), settings=settings).memoize_in_cache(
            "k", lambda: 1
        )

        assert cache.set.call_args.args[2] == 120

    def test_long_ttl_forwarded(self):
        cache = failing_cache()

        Memoizer(context=MemoContext(shared_cache=cache)).memoize_in_cache(
            "k", lambda: 1, ttl=86400 * 400
        )

        assert cache.set.call_args.args[2] == 86400 * 400

    def test_tag_with_space(self, context):
        memo = Memoizer(context=context)
        producer = Counter()

        memo.memoize_in_cache("k", producer, tags=["team a"])
        memo.invalidate_by_tag("team a")
        memo.memoize_in_cache("k", producer, tags=["team a"])

        assert producer.calls == 2

    def test_cached_none_is_hit(self, context, shared_cache):
        shared_cache.set("lc.k", None, 60)
        producer = Counter()

        assert Memoizer(context=context).memoize_in_cache("k", producer) is None
        assert producer.calls == 0

    def test_unconfigured_cache_raises(self):
        memo = Memoizer(context=MemoContext(), error_policy="log")

        with pytest.raises(BackendUnavailableError):
            memo.memoize_in_cache("k", lambda: 1)


class TestErrorPolicy:
    """Test reactions to shared cache failures."""

    def test_log_falls_back_to_producer(self):
        context = MemoContext(shared_cache=failing_cache(get=ConnectionError("down")))
        memo = Memoizer(context=context, error_policy="log")
        producer = Counter()

        with capture_logs() as logs:
            assert memo.memoize_in_cache("k", producer) == "value"

        errors = [log for log in logs if log["event"] == "Error during memoization backend call"]
        assert len(errors) == 1
        assert errors[0]["log_level"] == "error"
        assert errors[0]["error_type"] == "BackendError"
        assert errors[0]["backend"] == "cache"
        assert errors[0]["operation"] == "get"

    def test_degraded_values_not_mirrored(self):
        context = MemoContext(shared_cache=failing_cache(get=ConnectionError("down")))
        memo = Memoizer(context=context, error_policy="log")
        producer = Counter()

        memo.memoize_in_cache("k", producer)
        memo.memoize_in_cache("k", producer)

        assert producer.calls == 2
        assert memo.entry_count() == 0

    def test_raise_propagates_backend_error(self):
        context = MemoContext(shared_cache=failing_cache(get=ConnectionError("down")))
        memo = Memoizer(context=context, error_policy="raise")
        producer = Counter()

        with pytest.raises(BackendError) as exc_info:
            memo.memoize_in_cache("k", producer)

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert producer.calls == 0

    def test_per_call_override(self):
        context = MemoContext(shared_cache=failing_cache(get=ConnectionError("down")))
        memo = Memoizer(context=context, error_policy="log")

        with pytest.raises(BackendError):
            memo.memoize_in_cache("k", lambda: 1, on_error="raise")
        assert memo.memoize_in_cache("k", lambda: 1, on_error=True) == 1

    def test_policy_from_settings(self):
        context = MemoContext(shared_cache=failing_cache(get=ConnectionError("down")))
        memo = Memoizer(context=context, settings=Settings(LAZYCACHE_ERROR_POLICY="raise"))

        with pytest.raises(BackendError):
            memo.memoize_in_cache("k", lambda: 1)

    def test_store_failure_returns_value_unmirrored(self):
        context = MemoContext(shared_cache=failing_cache(set=ConnectionError("down")))
        memo = Memoizer(context=context, error_policy="log")

        assert memo.memoize_in_cache("k", lambda: 1) == 1
        assert memo.entry_count() == 0

    def test_store_failure_raise(self):
        context = MemoContext(shared_cache=failing_cache(set=ConnectionError("down")))
        producer = Counter()

        with pytest.raises(BackendError):
            Memoizer(context=context, error_policy="raise").memoize_in_cache("k", producer)
        assert producer.calls == 1

    def test_producer_error_not_wrapped(self):
        context = MemoContext(shared_cache=failing_cache())

        def broken():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            Memoizer(context=context, error_policy="log").memoize_in_cache("k", broken)


class TestSessionBackend:
    """Test memoization in the user session."""

    def test_stored_in_session(self, context, session_data):
        producer = Counter()
        Memoizer(context=context).memoize_in_session("k", producer)
        Memoizer(context=context).memoize_in_session("k", producer)

        assert producer.calls == 1
        assert session_data == {"lc.k": "value"}

    def test_no_session_never_caches(self):
        memo = Memoizer(context=MemoContext(session=lambda: None))
        producer = Counter()

        memo.memoize_in_session("k", producer)
        memo.memoize_in_session("k", producer)

        assert producer.calls == 2
        assert memo.entry_count() == 0

    def test_provider_called_once_per_call(self):
        session = MappingSession()
        provider = MagicMock(return_value=session)
        memo = Memoizer(context=MemoContext(session=provider))

        memo.memoize_in_session("k", lambda: 1)

        assert provider.call_count == 1
        assert session.data == {"lc.k": 1}

    def test_provider_failure_degrades(self):
        def provider():
            raise RuntimeError("outside request")

        memo = Memoizer(context=MemoContext(session=provider), error_policy="log")
        assert memo.memoize_in_session("k", lambda: 1) == 1

    def test_provider_failure_raises(self):
        def provider():
            raise RuntimeError("outside request")

        memo = Memoizer(context=MemoContext(session=provider), error_policy="raise")
        with pytest.raises(BackendError):
            memo.memoize_in_session("k", lambda: 1)


class TestStaticMemoization:
    """Test memoization shared per owner type."""

    def test_shared_by_owner_type(self, context):
        class Service:
            pass

        producer = Counter()
        Memoizer(Service(), context).memoize_static("k", producer, Backend.LOCAL)
        Memoizer(Service(), context).memoize_static("k", producer, Backend.LOCAL)

        assert producer.calls == 1

    def test_scoped_per_type(self, context):
        class Service:
            pass

        class Other:
            pass

        class SubService(Service):
            pass

        producer = Counter()
        for owner in (Service(), Other(), SubService()):
            Memoizer(owner, context).memoize_static("k", producer, Backend.LOCAL)

        assert producer.calls == 3

    def test_not_visible_in_instance_entries(self, context):
        memo = Memoizer(context=context)
        memo.memoize_static("k", lambda: 1, Backend.LOCAL)

        assert memo.all_entries() == {}
        assert memo.static_mirror.entries() == {"lc.k": 1}


class TestReentrancy:
    """Test producers requesting their own key."""

    def test_guard_raises(self, context):
        memo = Memoizer(context=context)

        def producer():
            return memo.memoize_local("k", producer)

        with pytest.raises(ReentrantMemoizationError) as exc_info:
            memo.memoize_local("k", producer)
        assert exc_info.value.key == "lc.k"

        assert memo.memoize_local("k", lambda: 1) == 1

    def test_other_keys_allowed(self, context):
        memo = Memoizer(context=context)

        result = memo.memoize_local("outer", lambda: memo.memoize_local("inner", lambda: 2) + 1)
        assert result == 3
        assert memo.all_entries() == {"lc.inner": 2, "lc.outer": 3}

    def test_guard_disabled(self, context):
        memo = Memoizer(context=context, settings=Settings(LAZYCACHE_REENTRANCY_GUARD=False))
        calls = []

        def producer():
            calls.append(1)
            if len(calls) == 1:
                memo.memoize_local("k", producer)
            return len(calls)

        assert memo.memoize_local("k", producer) == 2
        assert len(calls) == 2


class TestClear:
    """Test point invalidation."""

    def test_default_clears_mirror_only(self, context):
        memo = Memoizer(context=context)
        memo.memoize("k", lambda: 1, Backend.REGISTRY)

        assert memo.clear("k") is memo
        assert memo.entry_count() == 0
        assert memo.memoize("k", lambda: 2, Backend.REGISTRY) == 1

    def test_clear_backend(self, context):
        memo = Memoizer(context=context)
        memo.memoize("k", lambda: 1, Backend.REGISTRY)
        memo.clear("k", Backend.REGISTRY)

        assert memo.memoize("k", lambda: 2, Backend.REGISTRY) == 2

    def test_clear_shared_cache(self, context, shared_cache):
        memo = Memoizer(context=context)
        memo.memoize_in_cache("k", lambda: 1)
        memo.clear("k", "cache")

        assert shared_cache.get("lc.k") is MISS

    def test_clear_chains(self, context):
        memo = Memoizer(context=context)
        memo.memoize_local("a", lambda: 1)
        memo.memoize_local("b", lambda: 2)

        memo.clear("a").clear("b")
        assert memo.entry_count() == 0

    def test_clear_static(self, context):
        memo = Memoizer(context=context)
        memo.memoize_static("k", lambda: 1, Backend.LOCAL)

        assert memo.clear_static("k") is memo
        assert memo.memoize_static("k", lambda: 2, Backend.LOCAL) == 2

    def test_clear_backend_failure_still_clears_mirror(self):
        cache = failing_cache(delete=ConnectionError("down"))
        memo = Memoizer(context=MemoContext(shared_cache=cache))
        memo.memoize_in_cache("k", lambda: 1)

        with pytest.raises(BackendError):
            memo.clear("k", Backend.CACHE)
        assert memo.entry_count() == 0


class TestInvalidateByTag:
    """Test tag invalidation through the facade."""

    def test_reruns_producer(self, context):
        memo = Memoizer(context=context)
        producer = Counter()

        memo.memoize_in_cache(["user", 1], producer, tags=["user:1"])
        memo.invalidate_by_tag("user:1")
        memo.memoize_in_cache(["user", 1], producer, tags=["user:1"])

        assert producer.calls == 2

    def test_other_tags_untouched(self, context):
        memo = Memoizer(context=context)
        producer = Counter()

        memo.memoize_in_cache(["user", 2], producer, tags=["user:2"])
        memo.invalidate_by_tag(["user:1"])
        memo.memoize_in_cache(["user", 2], producer, tags=["user:2"])

        assert producer.calls == 1

    def test_evicts_other_memoizers(self, context):
        first = Memoizer(context=context)
        second = Memoizer(context=context)
        first.memoize_in_cache("k", lambda: 1, tags="t")
        second.memoize_static("k", lambda: 1, Backend.CACHE, tags="t")

        first.invalidate_by_tag("t")

        assert second.static_mirror.entries() == {}
        assert first.entry_count() == 0


class TestKeys:
    def test_key(self, context):
        assert Memoizer(context=context).key(["user", 42, True]) == CacheKey("lc.user.42.true")

    def test_custom_serializer(self, context):
        memo = Memoizer(context=context, serializer=lambda value: "x")
        assert memo.key(["filter", {"a": 1}]).value == "lc.filter.x"


class TestDefaultContext:
    def test_uses_configured_default(self, shared_cache):
        configure(shared_cache=shared_cache, session=MappingSession())
        Memoizer().memoize_in_cache("k", lambda: 1)

        assert shared_cache.get("lc.k") == 1


class TestMemoizerDescriptor:
    """Test the per-instance memoizer descriptor."""

    def test_one_memoizer_per_instance(self, context):
        class Service:
            lazy = memoizer(context)

        first, second = Service(), Service()

        assert first.lazy is first.lazy
        assert first.lazy is not second.lazy
        assert first.lazy.owner_type is Service
        assert isinstance(Service.lazy, memoizer)

    def test_options_forwarded(self):
        class Service:
            lazy = memoizer(error_policy="raise")

        assert Service().lazy.error_policy.value == "raise"

    def test_instance_lifetime(self, context):
        class Service:
            lazy = memoizer(context)

            def __init__(self):
                self.calls = 0

            def answer(self):
                def compute():
                    self.calls += 1
                    return 42

                return self.lazy.memoize_local("answer", compute)

        service = Service()
        service.answer()
        service.answer()
        assert service.calls == 1
        assert Service().answer() == 42

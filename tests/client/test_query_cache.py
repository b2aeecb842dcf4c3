from __future__ import annotations

import pytest

from marketplace.client.query_cache import QueryCache


def test_fetch_caches_loader_result() -> None:
    cache = QueryCache()
    calls = []

    def loader():
        calls.append(1)
        return ["course"]

    assert cache.fetch(("/api/courses",), loader) == ["course"]
    assert cache.fetch(("/api/courses",), loader) == ["course"]
    assert len(calls) == 1


def test_failed_loader_caches_nothing() -> None:
    cache = QueryCache()

    def boom():
        raise RuntimeError("network down")

    with pytest.raises(RuntimeError):
        cache.fetch(("/api/user",), boom)
    assert ("/api/user",) not in cache


def test_invalidate_drops_prefix_and_children_only() -> None:
    cache = QueryCache()
    for key in [
        ("/api/courses",),
        ("/api/courses", 1),
        ("/api/courses", 1, "reviews"),
        ("/api/courses", 2),
        ("/api/enrollments",),
    ]:
        cache.fetch(key, lambda: "v")

    dropped = cache.invalidate(("/api/courses", 1))

    assert dropped == 2
    assert ("/api/courses",) in cache
    assert ("/api/courses", 2) in cache
    assert ("/api/enrollments",) in cache
    assert ("/api/courses", 1) not in cache


def test_subscribers_hear_overlapping_invalidations() -> None:
    cache = QueryCache()
    heard: list[tuple] = []
    cache.subscribe(("/api/courses",), heard.append)
    cache.subscribe(("/api/courses", 7), heard.append)
    cache.subscribe(("/api/enrollments",), heard.append)

    cache.invalidate(("/api/courses", 7))
    assert heard == [("/api/courses", 7), ("/api/courses", 7)]

    heard.clear()
    cache.invalidate(("/api/courses", 8))
    assert heard == [("/api/courses", 8)]


def test_unsubscribe_stops_notifications() -> None:
    cache = QueryCache()
    heard: list[tuple] = []
    unsubscribe = cache.subscribe(("/api/user",), heard.append)
    unsubscribe()
    unsubscribe()
    cache.invalidate(("/api/user",))
    assert heard == []

"""Tests for the per-recipient image cache."""

import asyncio

import pytest

from kohi.image_cache import ImageCache


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_record_then_get_returns_url():
    cache = ImageCache(ttl_seconds=60, clock=Clock())
    cache.record("U1", "https://img/a.png")
    assert cache.get("U1") == "https://img/a.png"
    assert "U1" in cache


def test_newest_write_wins():
    cache = ImageCache(ttl_seconds=60, clock=Clock())
    cache.record("U1", "https://img/a.png")
    cache.record("U1", "https://img/b.png")
    assert cache.get("U1") == "https://img/b.png"
    assert len(cache) == 1


def test_recipients_are_isolated():
    cache = ImageCache(ttl_seconds=60, clock=Clock())
    cache.record("U1", "https://img/a.png")
    assert cache.get("U2") is None


def test_expired_entry_is_absent_without_sweep():
    clock = Clock()
    cache = ImageCache(ttl_seconds=60, clock=clock)
    cache.record("U1", "https://img/a.png")
    clock.now += 60
    assert cache.get("U1") is None
    assert "U1" not in cache
    # Still physically present until a sweep runs
    assert len(cache) == 1


def test_entry_exposes_timestamps():
    clock = Clock(500.0)
    cache = ImageCache(ttl_seconds=60, clock=clock)
    cache.record("U1", "https://img/a.png")
    entry = cache.get_entry("U1")
    assert entry.created_at == 500.0
    assert entry.expires_at == 560.0


def test_sweep_removes_only_expired_entries():
    clock = Clock()
    cache = ImageCache(ttl_seconds=60, clock=clock)
    cache.record("old", "https://img/old.png")
    clock.now += 30
    cache.record("new", "https://img/new.png")
    clock.now += 40

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new") == "https://img/new.png"


def test_sweep_runs_every_nth_write():
    clock = Clock()
    cache = ImageCache(ttl_seconds=10, sweep_every=3, clock=clock)
    cache.record("a", "u")
    cache.record("b", "u")
    clock.now += 20
    assert len(cache) == 2
    cache.record("c", "u")  # third write sweeps a and b
    assert len(cache) == 1
    assert cache.get("c") == "u"


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        ImageCache(ttl_seconds=0)


@pytest.mark.asyncio
async def test_periodic_sweep_task():
    clock = Clock()
    cache = ImageCache(ttl_seconds=10, clock=clock)
    cache.record("a", "u")
    clock.now += 20

    cache.start(interval_seconds=0.01)
    await asyncio.sleep(0.05)
    await cache.stop()

    assert len(cache) == 0

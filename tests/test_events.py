"""
Tests for the change feed: version counter and long-poll waits.
"""
import threading
import time

from taskfiles.events import ChangeFeed, ChangeResult


def test_starts_at_zero_and_bumps_by_one():
    feed = ChangeFeed()
    assert feed.version == 0
    assert feed.bump() == 1
    assert feed.bump() == 2
    assert feed.version == 2


def test_wait_returns_immediately_when_behind():
    feed = ChangeFeed()
    feed.bump()
    start = time.monotonic()
    result = feed.wait(0, timeout=5)
    assert result == ChangeResult(version=1, changed=True)
    assert time.monotonic() - start < 1


def test_wait_after_restart_resynchronizes():
    """A client holding a version from a previous process gets changed=True."""
    feed = ChangeFeed()
    assert feed.wait(42, timeout=5) == ChangeResult(version=0, changed=True)


def test_wait_times_out_without_change():
    feed = ChangeFeed()
    start = time.monotonic()
    result = feed.wait(0, timeout=0.1)
    assert result.to_dict() == {"version": 0, "changed": False}
    assert time.monotonic() - start >= 0.09


def test_negative_timeout_is_zero():
    assert ChangeFeed().wait(0, timeout=-3).changed is False


def test_one_bump_releases_all_waiters():
    feed = ChangeFeed()
    results = []

    def waiter():
        results.append(feed.wait(0, timeout=5))

    threads = [threading.Thread(target=waiter) for _ in range(2)]
    for t in threads:
        t.start()
    time.sleep(0.1)
    feed.bump()
    for t in threads:
        t.join(timeout=2)

    assert results == [ChangeResult(1, True), ChangeResult(1, True)]


def test_close_releases_waiters():
    feed = ChangeFeed()
    results = []
    t = threading.Thread(target=lambda: results.append(feed.wait(0, timeout=30)))
    t.start()
    time.sleep(0.1)
    feed.close()
    t.join(timeout=2)

    assert not t.is_alive()
    assert results == [ChangeResult(0, False)]
    assert feed.closed

"""
Unit tests for the worker thread pool.
"""

import threading

import pytest

from smollchat.core import ThreadPool


@pytest.fixture
def pool():
    pools = []

    def factory(**kwargs) -> ThreadPool:
        p = ThreadPool(idle_timeout=0.1, **kwargs)
        p.start()
        pools.append(p)
        return p

    yield factory

    for p in pools:
        p.shutdown(wait=False)


class TestThreadPool:

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            ThreadPool(min_workers=0)
        with pytest.raises(ValueError):
            ThreadPool(min_workers=4, max_workers=2)

    def test_submit_before_start(self):
        with pytest.raises(RuntimeError):
            ThreadPool().submit(print)

    def test_runs_tasks(self, pool, wait_for):
        p = pool(min_workers=2, max_workers=2)
        results = []

        for i in range(5):
            assert p.submit(results.append, args=(i,))

        assert wait_for(lambda: len(results) == 5)
        assert sorted(results) == [0, 1, 2, 3, 4]
        assert wait_for(lambda: p.stats["tasks"]["completed"] == 5)

    def test_failed_task_counted(self, pool, wait_for):
        p = pool(min_workers=1, max_workers=1)

        def broken():
            raise RuntimeError("boom")

        p.submit(broken)
        assert wait_for(lambda: p.stats["tasks"]["failed"] == 1)

        # The worker survives the failure
        done = threading.Event()
        p.submit(done.set)
        assert done.wait(5.0)

    def test_full_queue_rejects(self, pool, wait_for):
        p = pool(min_workers=1, max_workers=1, queue_size=1)
        release = threading.Event()

        p.submit(release.wait, args=(5.0,))
        assert wait_for(lambda: p.busy_workers == 1)

        assert p.submit(release.wait, args=(5.0,), block=False)  # queued
        assert not p.submit(release.wait, args=(5.0,), block=False)

        release.set()

    def test_scales_up_when_busy(self, pool, wait_for):
        p = pool(min_workers=1, max_workers=3)
        release = threading.Event()

        p.submit(release.wait, args=(5.0,))
        assert wait_for(lambda: p.busy_workers == 1)

        p.submit(release.wait, args=(5.0,))
        assert wait_for(lambda: p.busy_workers == 2)
        assert p.stats["workers"]["total"] == 2

        release.set()

    def test_burst_gets_a_worker_per_task(self, pool, wait_for):
        """Tasks submitted back to back all run at once, none left queued."""
        p = pool(min_workers=2, max_workers=8)
        release = threading.Event()
        started = []

        def hold():
            started.append(threading.current_thread().name)
            release.wait(5.0)

        for _ in range(4):
            assert p.submit(hold, block=False)

        try:
            assert wait_for(lambda: len(started) == 4)
            assert p.busy_workers == 4
            assert p.queued_tasks == 0
            assert p.stats["workers"]["total"] == 4
        finally:
            release.set()

    def test_burst_stops_at_max_workers(self, pool, wait_for):
        p = pool(min_workers=1, max_workers=3)
        release = threading.Event()

        for _ in range(5):
            p.submit(release.wait, args=(5.0,), block=False)

        try:
            assert wait_for(lambda: p.busy_workers == 3)
            assert p.stats["workers"]["total"] == 3
            assert p.queued_tasks == 2
        finally:
            release.set()

    def test_shutdown_waits_for_tasks(self):
        p = ThreadPool(min_workers=1, max_workers=1, idle_timeout=0.1)
        p.start()
        finished = threading.Event()

        p.submit(lambda: finished.wait(0.2) or finished.set())
        p.shutdown(wait=True, timeout=5.0)

        assert finished.is_set()
        assert not p.is_running
        with pytest.raises(RuntimeError):
            p.submit(print)

"""并发限制器测试"""

import logging
import threading
import time

import pytest

from assetmirror.core.exceptions import ConfigError
from assetmirror.core.limiter import ConcurrencyLimiter


class TestConcurrencyLimiter:
    def test_invalid_limit(self) -> None:
        with pytest.raises(ConfigError):
            ConcurrencyLimiter(0)

    def test_bound_respected(self) -> None:
        with ConcurrencyLimiter(2) as limiter:
            for _ in range(8):
                limiter.submit(time.sleep, 0.05)
            assert limiter.join(timeout=10) is True
            assert 1 <= limiter.peak_active <= 2
            assert limiter.submitted == 8

    def test_fifo_with_single_worker(self) -> None:
        order: list[int] = []
        with ConcurrencyLimiter(1) as limiter:
            for i in range(5):
                limiter.submit(order.append, i)
            limiter.join(timeout=10)
        assert order == [0, 1, 2, 3, 4]

    def test_nested_jobs_joined(self) -> None:
        done: list[str] = []
        limiter = ConcurrencyLimiter(1)

        def child(name: str) -> None:
            done.append(name)

        def parent() -> None:
            done.append("parent")
            limiter.submit(child, "a")
            limiter.submit(child, "b")

        limiter.submit(parent)
        assert limiter.join(timeout=10) is True
        limiter.shutdown()
        assert done == ["parent", "a", "b"]

    def test_join_timeout(self) -> None:
        gate = threading.Event()
        limiter = ConcurrencyLimiter(1)
        limiter.submit(gate.wait, 10)
        assert limiter.join(timeout=0.05) is False
        gate.set()
        assert limiter.join(timeout=10) is True
        limiter.shutdown()

    def test_join_without_jobs(self) -> None:
        with ConcurrencyLimiter(3) as limiter:
            assert limiter.join(timeout=1) is True

    def test_cancel_stops_admission(self) -> None:
        limiter = ConcurrencyLimiter(2)
        limiter.cancel()
        assert limiter.cancelled is True
        assert limiter.submit(time.sleep, 0) is None
        assert limiter.submitted == 0
        assert limiter.join(timeout=1) is True
        limiter.shutdown()

    def test_shared_cancel_event(self) -> None:
        event = threading.Event()
        limiter = ConcurrencyLimiter(2, event)
        event.set()
        assert limiter.submit(time.sleep, 0) is None
        limiter.shutdown()

    def test_closed_after_shutdown(self) -> None:
        limiter = ConcurrencyLimiter(2)
        limiter.shutdown()
        assert limiter.submit(time.sleep, 0) is None

    def test_task_exception_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        def boom() -> None:
            raise RuntimeError("任务炸了")

        limiter = ConcurrencyLimiter(1)
        with caplog.at_level(logging.ERROR, logger="assetmirror.core.limiter"):
            limiter.submit(boom)
            assert limiter.join(timeout=10) is True
            limiter.shutdown(wait=True)
        assert "任务执行异常" in caplog.text
        assert limiter.stats()["pending"] == 0

    def test_stats(self) -> None:
        with ConcurrencyLimiter(4) as limiter:
            limiter.submit(time.sleep, 0)
            limiter.join(timeout=10)
            stats = limiter.stats()
        assert stats["limit"] == 4
        assert stats["submitted"] == 1
        assert stats["active"] == 0

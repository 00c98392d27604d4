"""Unit tests for retry backoff and call pacing."""

from __future__ import annotations

import random
from unittest.mock import MagicMock

import pytest

from sportlink_sync.errors import RemoteAPIError
from sportlink_sync.sync.retry import SINGLE_ATTEMPT, Pacer, RetryPolicy, call_with_retry


class TestRetryPolicy:
    def test_backoff_without_jitter_doubles(self):
        policy = RetryPolicy(base_delay=1.0, max_jitter=0)
        assert [policy.backoff(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(base_delay=1.0, max_jitter=1.0)
        rng = random.Random(7)
        for attempt in range(3):
            delay = policy.backoff(attempt, rng)
            assert 2**attempt <= delay <= 2**attempt + 1.0


class TestCallWithRetry:
    def test_returns_first_success(self):
        func = MagicMock(return_value=101)
        sleep = MagicMock()
        assert call_with_retry(func, RetryPolicy(), sleep=sleep) == 101
        func.assert_called_once()
        sleep.assert_not_called()

    def test_retries_until_success(self):
        func = MagicMock(side_effect=[RemoteAPIError("busy", 503), RemoteAPIError("busy", 503), 7])
        sleep = MagicMock()

        result = call_with_retry(func, RetryPolicy(max_attempts=3, max_jitter=0), sleep=sleep)

        assert result == 7
        assert func.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_reraises_last_error(self):
        errors = [RemoteAPIError("first", 500), RemoteAPIError("last", 502)]
        func = MagicMock(side_effect=errors)

        with pytest.raises(RemoteAPIError, match="last"):
            call_with_retry(func, RetryPolicy(max_attempts=2, max_jitter=0), sleep=MagicMock())

        assert func.call_count == 2

    def test_single_attempt_never_sleeps(self):
        func = MagicMock(side_effect=RemoteAPIError("down", 500))
        sleep = MagicMock()

        with pytest.raises(RemoteAPIError):
            call_with_retry(func, SINGLE_ATTEMPT, sleep=sleep)

        func.assert_called_once()
        sleep.assert_not_called()


class TestPacer:
    def test_no_delay_before_first_call(self, pacer, sleeps):
        pacer.before_call()
        assert sleeps == []

    def test_one_delay_between_consecutive_calls(self, pacer, sleeps):
        for _ in range(3):
            pacer.before_call()
        assert sleeps == [2.0, 2.0]
        assert pacer.calls == 3

    def test_zero_delay_never_sleeps(self, sleeps):
        pacer = Pacer(delay=0, sleep=sleeps.append)
        pacer.before_call()
        pacer.before_call()
        assert sleeps == []

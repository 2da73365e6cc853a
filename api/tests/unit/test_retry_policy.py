"""
Tests unitarios para la política de reintentos de CoinGecko.

Verifica:
- Clasificación de respuestas (429, 400 recuperable/fatal, red, 5xx).
- Backoff exponencial con jitter acotado y tope.
- Presupuesto de reintentos y respeto de Retry-After.
"""
from __future__ import annotations

import random

import pytest

from coinsync.infrastructure.external.coingecko.retry_policy import (
    RetryAction,
    RetryPolicy,
    RetryState,
    classify_response,
    compute_backoff,
    parse_retry_after,
)
from coinsync.infrastructure.external.coingecko.types import ErrorKind


class TestClassifyResponse:

    @pytest.mark.parametrize("status_code", [200, 201, 204])
    def test_success(self, status_code: int) -> None:
        assert classify_response(status_code) is ErrorKind.SUCCESS

    def test_rate_limited(self) -> None:
        assert classify_response(429, "Too many requests") is ErrorKind.RATE_LIMITED

    def test_bad_request_with_invalid_marker_is_skippable(self) -> None:
        assert classify_response(400, "Invalid page parameter") is ErrorKind.BAD_REQUEST_SKIPPABLE

    def test_bad_request_without_marker_is_fatal(self) -> None:
        assert classify_response(400, "missing vs_currency") is ErrorKind.BAD_REQUEST_FATAL
        assert classify_response(400) is ErrorKind.BAD_REQUEST_FATAL

    @pytest.mark.parametrize("status_code", [None, 401, 404, 500, 502, 503])
    def test_everything_else_is_transient(self, status_code) -> None:
        assert classify_response(status_code) is ErrorKind.TRANSIENT


class TestParseRetryAfter:

    def test_numeric_value(self) -> None:
        assert parse_retry_after("12") == 12.0
        assert parse_retry_after(" 1.5 ") == 1.5

    @pytest.mark.parametrize("value", [None, "", "0", "-3", "Wed, 21 Oct 2015 07:28:00 GMT"])
    def test_missing_or_unusable_value(self, value) -> None:
        assert parse_retry_after(value) is None


class TestComputeBackoff:

    def test_exponential_without_jitter(self) -> None:
        delays = [
            compute_backoff(n, base_delay=6.0, max_delay=60.0, rng=lambda: 0.0)
            for n in range(5)
        ]

        assert delays == [6.0, 12.0, 24.0, 48.0, 60.0]

    def test_jitter_is_bounded(self) -> None:
        delay = compute_backoff(0, base_delay=10.0, max_delay=60.0, rng=lambda: 1.0)

        assert delay == pytest.approx(11.0)

    def test_never_exceeds_max_delay(self) -> None:
        for n in range(20):
            assert compute_backoff(n, base_delay=6.0, max_delay=60.0) <= 60.0

    def test_non_decreasing_with_random_jitter(self) -> None:
        rng = random.Random(42).random
        delays = [
            compute_backoff(n, base_delay=1.0, max_delay=60.0, rng=rng)
            for n in range(10)
        ]

        assert delays == sorted(delays)


class TestRetryPolicy:

    def _policy(self, **kwargs) -> RetryPolicy:
        kwargs.setdefault("rng", lambda: 0.0)
        return RetryPolicy(**kwargs)

    def test_success_returns_immediately(self) -> None:
        policy = self._policy()
        policy.begin_attempt()

        decision = policy.decide(ErrorKind.SUCCESS)

        assert decision.action is RetryAction.RETURN
        assert policy.state is RetryState.DONE
        assert policy.retry_count == 0

    def test_budget_allows_five_retries_then_gives_up(self) -> None:
        policy = self._policy(max_retries=5)
        actions = []
        for _ in range(6):
            policy.begin_attempt()
            actions.append(policy.decide(ErrorKind.TRANSIENT, reason="HTTP 503").action)

        assert actions == [RetryAction.RETRY] * 5 + [RetryAction.GIVE_UP]
        assert policy.retry_count == 5
        assert policy.last_error == "HTTP 503"

    def test_rate_limit_and_transient_share_budget(self) -> None:
        policy = self._policy(max_retries=2)
        policy.begin_attempt()
        assert policy.decide(ErrorKind.RATE_LIMITED).action is RetryAction.RETRY
        policy.begin_attempt()
        assert policy.decide(ErrorKind.TRANSIENT).action is RetryAction.RETRY
        policy.begin_attempt()
        assert policy.decide(ErrorKind.RATE_LIMITED).action is RetryAction.GIVE_UP

    def test_backoff_delays_grow_between_retries(self) -> None:
        policy = self._policy(base_delay=6.0, max_delay=60.0)
        delays = []
        for _ in range(5):
            policy.begin_attempt()
            delays.append(policy.decide(ErrorKind.RATE_LIMITED).delay)

        assert delays == [6.0, 12.0, 24.0, 48.0, 60.0]

    def test_retry_after_is_honored_without_cap(self) -> None:
        policy = self._policy(max_delay=60.0)
        policy.begin_attempt()

        decision = policy.decide(ErrorKind.RATE_LIMITED, retry_after=120.0)

        assert decision.action is RetryAction.RETRY
        assert decision.delay == 120.0

    def test_retry_after_ignored_for_transient_errors(self) -> None:
        policy = self._policy(base_delay=6.0)
        policy.begin_attempt()

        decision = policy.decide(ErrorKind.TRANSIENT, retry_after=120.0)

        assert decision.delay == 6.0

    def test_skippable_bad_request_skips_without_retry(self) -> None:
        policy = self._policy()
        policy.begin_attempt()

        decision = policy.decide(ErrorKind.BAD_REQUEST_SKIPPABLE, reason="invalid page")

        assert decision.action is RetryAction.SKIP
        assert policy.state is RetryState.SKIPPED
        assert policy.retry_count == 0

    def test_fatal_bad_request_aborts(self) -> None:
        policy = self._policy()
        policy.begin_attempt()

        decision = policy.decide(ErrorKind.BAD_REQUEST_FATAL)

        assert decision.action is RetryAction.ABORT
        assert policy.state is RetryState.ABORTED

    def test_begin_attempt_after_terminal_state_raises(self) -> None:
        policy = self._policy()
        policy.begin_attempt()
        policy.decide(ErrorKind.BAD_REQUEST_FATAL)

        with pytest.raises(RuntimeError):
            policy.begin_attempt()

import pytest

from relaychain.errors import CancelledError, RetryError
from relaychain.utils.cancel import CancelToken
from relaychain.utils.retry import RetryPolicy, call_with_retry


def test_exhaustion_raises_retry_error_chained_to_last_failure():
    calls, sleeps = [], []

    def boom():
        calls.append(1)
        raise OSError(f"fail {len(calls)}")

    with pytest.raises(RetryError) as ei:
        call_with_retry(boom, RetryPolicy(max_attempts=3, interval=2.0), sleep=sleeps.append)

    assert len(calls) == 3
    assert sleeps == [2.0, 2.0]
    assert str(ei.value.__cause__) == "fail 3"


def test_success_after_failures_returns_value():
    attempts = iter([OSError("a"), OSError("b"), "ok"])
    seen = []

    def flaky():
        v = next(attempts)
        if isinstance(v, Exception):
            raise v
        return v

    out = call_with_retry(
        flaky,
        RetryPolicy(max_attempts=5, interval=1.0),
        sleep=lambda s: None,
        on_retry=lambda attempt, exc: seen.append((attempt, str(exc))),
    )
    assert out == "ok"
    assert seen == [(1, "a"), (2, "b")]


def test_unlisted_exceptions_are_not_retried():
    calls = []

    def bad():
        calls.append(1)
        raise KeyError("nope")

    with pytest.raises(KeyError):
        call_with_retry(bad, RetryPolicy(max_attempts=4, interval=0), retry_on=(OSError,), sleep=lambda s: None)
    assert len(calls) == 1


def test_backoff_and_cap():
    p = RetryPolicy(max_attempts=5, interval=1.0, backoff=2.0, max_interval=5.0)
    assert [p.delay_for(i) for i in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]


def test_policy_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_cancelled_token_stops_before_next_attempt():
    token = CancelToken()
    calls = []

    def fail_and_cancel():
        calls.append(1)
        token.cancel()
        raise OSError("down")

    with pytest.raises(CancelledError):
        call_with_retry(fail_and_cancel, RetryPolicy(max_attempts=5, interval=0), sleep=lambda s: None, cancel=token)
    assert len(calls) == 1


def test_cancel_wait_as_sleep_cuts_backoff_short():
    token = CancelToken(timeout=60)
    calls = []

    def fail_and_cancel():
        calls.append(1)
        token.cancel()
        raise OSError("down")

    with pytest.raises(CancelledError):
        call_with_retry(
            fail_and_cancel,
            RetryPolicy(max_attempts=3, interval=300.0),
            sleep=token.wait,
            cancel=token,
        )
    assert len(calls) == 1

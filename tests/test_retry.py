import pytest

from boxer.exceptions import RemoteError, TransientRemoteError
from boxer.remote.retry import RetryPolicy


def flaky(failures, result='ok'):
    """Callable that raises each queued exception once, then returns result."""
    calls = []

    def fn(*args):
        calls.append(args)
        if failures:
            raise failures.pop(0)
        return result

    fn.calls = calls
    return fn


def test_backoff_doubles_and_caps():
    policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_retry_after_wins_when_longer_but_is_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
    assert policy.delay_for(1, TransientRemoteError(429, retry_after=3)) == 3.0
    assert policy.delay_for(1, TransientRemoteError(429, retry_after=120)) == 10.0
    assert policy.delay_for(3, TransientRemoteError(429, retry_after=1)) == 4.0


def test_call_retries_transient_errors(retry, sleeps):
    fn = flaky([TransientRemoteError(503), TransientRemoteError(None, 'reset')])
    assert retry.call(fn, 'a') == 'ok'
    assert len(fn.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_call_gives_up_after_max_attempts(retry, sleeps):
    fn = flaky([TransientRemoteError(500)] * 5)
    with pytest.raises(TransientRemoteError):
        retry.call(fn)
    assert len(fn.calls) == 3
    assert len(sleeps) == 2


def test_non_retryable_errors_pass_straight_through(retry, sleeps):
    fn = flaky([RemoteError(403, 'forbidden')])
    with pytest.raises(RemoteError):
        retry.call(fn)
    assert len(fn.calls) == 1
    assert sleeps == []


def test_jitter_stays_within_bounds():
    policy = RetryPolicy(base_delay=2.0, max_delay=30.0, jitter=0.5)
    for _ in range(20):
        assert 2.0 <= policy.delay_for(1) <= 2.5


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)

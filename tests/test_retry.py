import pytest
from tenacity import retry_if_exception_type, retry_if_result

from kube_scaler.core.exceptions import RunCancelled
from kube_scaler.core.retry import CancellationToken, RetryPolicy


def always_fail(counter):
    def attempt():
        counter.append(1)
        raise ConnectionError("boom")
    return attempt


def test_policy_needs_a_budget():
    with pytest.raises(ValueError):
        RetryPolicy(interval=1)


def test_policy_rejects_bad_values():
    with pytest.raises(ValueError):
        RetryPolicy(interval=-1, timeout=10)
    with pytest.raises(ValueError):
        RetryPolicy(interval=1, max_attempts=0)


def test_deadline_bounds_attempts(clock):
    attempts = []
    retrying = RetryPolicy(interval=10, timeout=60).controller(
        retry=retry_if_exception_type(ConnectionError),
        clock=clock,
        sleep=clock.sleep,
        on_exhausted=lambda state: "exhausted",
    )

    assert retrying(always_fail(attempts)) == "exhausted"
    assert len(attempts) == 6
    assert clock.sleeps == [10] * 5


def test_deadline_measured_from_controller_creation(clock):
    clock.now = 1000.0
    attempts = []
    retrying = RetryPolicy(interval=10, timeout=30).controller(
        retry=retry_if_exception_type(ConnectionError),
        clock=clock,
        sleep=clock.sleep,
        on_exhausted=lambda state: None,
    )

    retrying(always_fail(attempts))

    assert len(attempts) == 3


def test_attempt_budget(clock):
    attempts = []
    retrying = RetryPolicy(interval=1, max_attempts=5).controller(
        retry=retry_if_exception_type(ConnectionError),
        clock=clock,
        sleep=clock.sleep,
        on_exhausted=lambda state: state.attempt_number,
    )

    assert retrying(always_fail(attempts)) == 5
    assert clock.sleeps == [1] * 4


def test_result_predicate_stops_on_match(clock):
    values = iter([1, 2, 3, 4])
    retrying = RetryPolicy(interval=1, max_attempts=5).controller(
        retry=retry_if_result(lambda value: value != 3),
        clock=clock,
        sleep=clock.sleep,
    )

    assert retrying(lambda: next(values)) == 3
    assert len(clock.sleeps) == 2


def test_cancellation_stops_loop(clock):
    token = CancellationToken()
    attempts = []

    def attempt():
        attempts.append(1)
        if len(attempts) == 2:
            token.cancel()
        raise ConnectionError("boom")

    retrying = RetryPolicy(interval=10, timeout=600).controller(
        retry=retry_if_exception_type(ConnectionError),
        clock=clock,
        sleep=clock.sleep,
        cancel_token=token,
        on_exhausted=lambda state: "stopped",
    )

    assert retrying(attempt) == "stopped"
    assert len(attempts) == 2


def test_token_wait_returns_early_when_cancelled():
    token = CancellationToken()
    token.cancel()

    # would block for an hour if the wait were not interrupted
    token.wait(3600)

    assert token.cancelled


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()

    with pytest.raises(RunCancelled):
        token.raise_if_cancelled()

import math
import threading

import pytest

from instance_orchestrator.app.errors import (
    InvalidArgumentError,
    ResourceNotFoundError,
    WaitCancelledError,
    WaitTimeoutError,
    WatchFailureError,
)
from instance_orchestrator.app.waiter import CancellationToken, PollWaiter, WaitStatus
from instance_orchestrator.tests.fakes import FakeClock, FakeEc2Backend, make_waiter


def _backend_with(states):
    backend = FakeEc2Backend()
    backend.add_instance("i-0abc", states, instance_type="t2.micro")
    return backend


def test_reaches_target_and_returns_fresh_descriptor():
    backend = _backend_with(["pending", "pending", "running"])
    waiter = make_waiter(backend)

    descriptor = waiter.wait("i-0abc", "running", 60, 5)

    assert descriptor.state == "running"
    assert descriptor.public_dns_name
    # three polls plus the final re-fetch
    assert backend.describe_count == 4


@pytest.mark.parametrize("timeout, poll", [(0, 5), (-1, 5), (60, 0), (60, -2)])
def test_rejects_non_positive_durations(timeout, poll):
    backend = _backend_with(["running"])
    waiter = make_waiter(backend)

    with pytest.raises(InvalidArgumentError):
        waiter.watch("i-0abc", "running", timeout, poll)
    assert backend.describe_count == 0


def test_unknown_instance_is_not_found():
    waiter = make_waiter(FakeEc2Backend())

    with pytest.raises(ResourceNotFoundError):
        waiter.wait("i-0missing", "running", 60, 5)


def test_times_out_after_bounded_number_of_polls():
    backend = _backend_with(["pending"])
    clock = FakeClock()
    waiter = PollWaiter(backend, clock=clock, sleep=clock.sleep)

    outcome = waiter.watch("i-0abc", "running", 10, 2)

    assert outcome.status is WaitStatus.TIMED_OUT
    assert abs(outcome.attempts - math.ceil(10 / 2)) <= 1
    assert sum(clock.sleeps) <= 10
    assert outcome.descriptor.state == "pending"


def test_last_sleep_is_clamped_to_remaining_time():
    backend = _backend_with(["pending"])
    clock = FakeClock()
    waiter = PollWaiter(backend, clock=clock, sleep=clock.sleep)

    waiter.watch("i-0abc", "running", 7, 5)

    assert clock.sleeps == [5, 2]


def test_wait_raises_timeout_with_last_state():
    waiter = make_waiter(_backend_with(["pending"]))

    with pytest.raises(WaitTimeoutError) as excinfo:
        waiter.wait("i-0abc", "running", 10, 5)
    assert excinfo.value.details["lastState"] == "pending"
    assert excinfo.value.status_code == 408


def test_terminal_failure_stops_polling_early():
    backend = _backend_with(["pending", "shutting-down", "terminated"])
    waiter = make_waiter(backend)

    outcome = waiter.watch("i-0abc", "running", 300, 5)

    assert outcome.status is WaitStatus.WATCH_FAILED
    assert outcome.attempts == 2
    with pytest.raises(WatchFailureError):
        make_waiter(_backend_with(["terminated"])).wait("i-0abc", "running", 300, 5)


def test_cancelled_token_stops_before_polling():
    backend = _backend_with(["pending"])
    token = CancellationToken()
    token.cancel("shutdown")

    with pytest.raises(WaitCancelledError) as excinfo:
        make_waiter(backend).wait("i-0abc", "running", 60, 5, token)
    assert "shutdown" in str(excinfo.value)
    assert backend.describe_count == 0


def test_cancellation_interrupts_sleep():
    backend = _backend_with(["pending"])
    waiter = PollWaiter(backend)
    token = CancellationToken()
    timer = threading.Timer(0.05, token.cancel, args=("client disconnected",))
    timer.start()
    try:
        outcome = waiter.watch("i-0abc", "running", 30, 10, token)
    finally:
        timer.cancel()

    assert outcome.status is WaitStatus.CANCELLED
    assert outcome.elapsed_seconds < 10


class DescribeFailsAfterFirstPoll(FakeEc2Backend):
    def describe(self, instance_id):
        descriptor = super().describe(instance_id)
        self.fail_describe = True
        return descriptor


def test_provider_error_mid_wait_is_watch_failure():
    backend = DescribeFailsAfterFirstPoll()
    backend.add_instance("i-0abc", ["pending"])

    with pytest.raises(WatchFailureError) as excinfo:
        make_waiter(backend).wait("i-0abc", "running", 60, 5)
    assert excinfo.value.status_code == 409
    assert excinfo.value.details["lastState"] == "pending"
    assert "describe unavailable" in str(excinfo.value)


def test_provider_error_on_final_fetch_keeps_last_descriptor():
    backend = DescribeFailsAfterFirstPoll()
    backend.add_instance("i-0abc", ["running"])

    outcome = make_waiter(backend).watch("i-0abc", "running", 60, 5)

    assert outcome.status is WaitStatus.WATCH_FAILED
    assert outcome.descriptor.state == "running"
    assert outcome.attempts == 1
    assert "describe unavailable" in outcome.error

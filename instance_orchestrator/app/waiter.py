"""Bounded polling watcher for instance lifecycle states.

The engine only knows how to fetch a descriptor and ask whether the
observed state rules out the target. Which states count as failures for a
given target is decided by the capability, so the loop treats every target
state the same way.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .errors import InvalidArgumentError, ProviderError, WaitCancelledError, WaitTimeoutError, WatchFailureError
from .schemas import ResourceDescriptor

logger = logging.getLogger(__name__)


class DescriptorSource(Protocol):
    def describe(self, instance_id: str) -> ResourceDescriptor: ...

    def is_terminal_failure(self, descriptor: ResourceDescriptor, target_state: str) -> bool: ...


class CancellationToken:
    """Thread-safe cancel flag that doubles as an interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(max(0.0, seconds))


class WaitStatus(str, enum.Enum):
    REACHED_TARGET = "reached_target"
    TIMED_OUT = "timed_out"
    WATCH_FAILED = "watch_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class WaitOutcome:
    instance_id: str
    target_state: str
    status: WaitStatus
    descriptor: Optional[ResourceDescriptor]
    attempts: int
    elapsed_seconds: float
    error: str = ""


class PollWaiter:
    def __init__(
        self,
        source: DescriptorSource,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.source = source
        self._clock = clock
        self._sleep = sleep

    def watch(
        self,
        instance_id: str,
        target_state: str,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WaitOutcome:
        """Poll until the target, a terminal failure, the deadline, or cancellation.

        Raises ResourceNotFoundError straight from the source and
        InvalidArgumentError for non-positive durations. Any other provider
        failure while polling ends the watch as WATCH_FAILED with the error
        text kept on the outcome.
        """
        _require_positive("timeout", timeout_seconds)
        _require_positive("poll interval", poll_interval_seconds)
        token = cancel_token or CancellationToken()

        started = self._clock()
        deadline = started + timeout_seconds
        attempts = 0
        descriptor: Optional[ResourceDescriptor] = None

        while True:
            if token.cancelled:
                return self._outcome(instance_id, target_state, WaitStatus.CANCELLED, descriptor, attempts, started)

            try:
                current = self.source.describe(instance_id)
            except ProviderError as exc:
                return self._outcome(
                    instance_id, target_state, WaitStatus.WATCH_FAILED, descriptor, attempts, started, error=str(exc)
                )
            descriptor = current
            attempts += 1
            logger.debug(
                "Poll %d for %s: state=%s target=%s",
                attempts,
                instance_id,
                descriptor.state,
                target_state,
                extra={"instance_id": instance_id},
            )

            if descriptor.state == target_state:
                try:
                    final = self.source.describe(instance_id)
                except ProviderError as exc:
                    return self._outcome(
                        instance_id, target_state, WaitStatus.WATCH_FAILED, descriptor, attempts, started, error=str(exc)
                    )
                return self._outcome(instance_id, target_state, WaitStatus.REACHED_TARGET, final, attempts, started)

            if self.source.is_terminal_failure(descriptor, target_state):
                return self._outcome(instance_id, target_state, WaitStatus.WATCH_FAILED, descriptor, attempts, started)

            remaining = deadline - self._clock()
            if remaining <= 0:
                return self._outcome(instance_id, target_state, WaitStatus.TIMED_OUT, descriptor, attempts, started)

            delay = min(poll_interval_seconds, remaining)
            if self._sleep is not None:
                self._sleep(delay)
            elif token.wait(delay):
                return self._outcome(instance_id, target_state, WaitStatus.CANCELLED, descriptor, attempts, started)

    def wait(
        self,
        instance_id: str,
        target_state: str,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResourceDescriptor:
        outcome = self.watch(instance_id, target_state, timeout_seconds, poll_interval_seconds, cancel_token)
        logger.info(
            "Wait for %s -> %s finished: %s after %d polls",
            instance_id,
            target_state,
            outcome.status.value,
            outcome.attempts,
            extra={"instance_id": instance_id, "wait_status": outcome.status.value},
        )

        if outcome.status is WaitStatus.REACHED_TARGET:
            return outcome.descriptor
        last_state = outcome.descriptor.state if outcome.descriptor else None
        if outcome.status is WaitStatus.TIMED_OUT:
            raise WaitTimeoutError(
                f"Timed out waiting for instance {instance_id} to be {target_state} (last state: {last_state})",
                outcome=outcome,
            )
        if outcome.status is WaitStatus.WATCH_FAILED and outcome.error:
            raise WatchFailureError(
                f"Describing instance {instance_id} failed while waiting for {target_state}: {outcome.error}",
                outcome=outcome,
            )
        if outcome.status is WaitStatus.WATCH_FAILED:
            raise WatchFailureError(
                f"Instance {instance_id} entered {last_state} while waiting for {target_state}",
                outcome=outcome,
            )
        reason = cancel_token.reason if cancel_token is not None else "cancelled"
        raise WaitCancelledError(f"Wait for instance {instance_id} cancelled: {reason}", outcome=outcome)

    def _outcome(self, instance_id, target_state, status, descriptor, attempts, started, error="") -> WaitOutcome:
        return WaitOutcome(
            instance_id=instance_id,
            target_state=target_state,
            status=status,
            descriptor=descriptor,
            attempts=attempts,
            elapsed_seconds=round(self._clock() - started, 3),
            error=error,
        )


def _require_positive(label: str, value: float) -> None:
    if value is None or not value > 0:
        raise InvalidArgumentError(f"{label} must be a positive duration, got {value}", details={"value": value})

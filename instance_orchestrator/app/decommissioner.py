import logging
from dataclasses import dataclass
from typing import Optional

from .waiter import CancellationToken, PollWaiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TerminationResult:
    instance_id: str
    previous_state: Optional[str]
    current_state: Optional[str]
    final_state: Optional[str] = None


class Decommissioner:
    def __init__(self, backend, waiter: PollWaiter):
        self.backend = backend
        self.waiter = waiter

    def terminate(self, instance_id: str) -> TerminationResult:
        """Terminate an instance; repeating it on a terminated instance is a no-op."""
        previous, current = self.backend.terminate(instance_id)
        logger.info(
            "Terminate %s: %s -> %s",
            instance_id,
            previous,
            current,
            extra={"instance_id": instance_id},
        )
        return TerminationResult(instance_id=instance_id, previous_state=previous, current_state=current)

    def terminate_and_wait(
        self,
        instance_id: str,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TerminationResult:
        result = self.terminate(instance_id)
        final = self.waiter.wait(instance_id, "terminated", timeout_seconds, poll_interval_seconds, cancel_token)
        return TerminationResult(
            instance_id=instance_id,
            previous_state=result.previous_state,
            current_state=result.current_state,
            final_state=final.state,
        )

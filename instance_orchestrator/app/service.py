from __future__ import annotations

from typing import Optional

from .ami_resolver import AmiResolver
from .config import Settings
from .decommissioner import Decommissioner
from .ec2_backend import Ec2Backend
from .errors import UpstreamEmptyResponseError
from .identity import IdentityProbe
from .model_backend import ChatCompletionBackend, pinned_temperature
from .provisioner import ResourceProvisioner
from .schemas import (
    CreateAndWaitResponse,
    CreateInstanceResponse,
    InstanceStateResponse,
    PingResponse,
    PromptRequest,
    PromptResponse,
    ProvisioningRequest,
    TerminateInstanceResponse,
)
from .synthesizer import IntentSynthesizer
from .waiter import CancellationToken, PollWaiter


class InstanceLifecycleService:
    """Wires the lifecycle components together and maps results to API shapes."""

    def __init__(
        self,
        settings: Settings,
        backend=None,
        model_backend: Optional[ChatCompletionBackend] = None,
        identity: Optional[IdentityProbe] = None,
        waiter: Optional[PollWaiter] = None,
    ):
        self.settings = settings
        self.backend = backend or Ec2Backend(settings)
        self.waiter = waiter or PollWaiter(self.backend)
        self.ami_resolver = AmiResolver(settings, self.backend)
        self.provisioner = ResourceProvisioner(settings, self.backend, self.ami_resolver, self.waiter)
        self.decommissioner = Decommissioner(self.backend, self.waiter)
        self.model_backend = model_backend or ChatCompletionBackend(settings)
        self.synthesizer = IntentSynthesizer(settings, self.model_backend, self.provisioner)
        self.identity = identity or IdentityProbe(settings)

    def create(self, request: ProvisioningRequest) -> CreateInstanceResponse:
        return CreateInstanceResponse.from_descriptor(self.provisioner.create(request))

    def create_and_wait(
        self,
        request: ProvisioningRequest,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CreateAndWaitResponse:
        descriptor = self.provisioner.create_and_wait(request, timeout_seconds, poll_interval_seconds, cancel_token)
        return CreateAndWaitResponse.from_descriptor(descriptor)

    def describe(self, instance_id: str) -> InstanceStateResponse:
        return InstanceStateResponse.from_descriptor(self.backend.describe(instance_id))

    def wait_until_running(
        self,
        instance_id: str,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> InstanceStateResponse:
        descriptor = self.waiter.wait(instance_id, "running", timeout_seconds, poll_interval_seconds, cancel_token)
        return InstanceStateResponse.from_descriptor(descriptor)

    def terminate(
        self,
        instance_id: str,
        wait: bool = False,
        timeout_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TerminateInstanceResponse:
        if wait:
            result = self.decommissioner.terminate_and_wait(
                instance_id,
                timeout_seconds if timeout_seconds is not None else self.settings.wait_timeout_seconds,
                poll_interval_seconds if poll_interval_seconds is not None else self.settings.poll_interval_seconds,
                cancel_token,
            )
        else:
            result = self.decommissioner.terminate(instance_id)
        return TerminateInstanceResponse(
            instance_id=result.instance_id,
            previous_state=result.previous_state,
            current_state=result.current_state,
            final_state=result.final_state,
        )

    def complete_prompt(self, request: PromptRequest) -> PromptResponse:
        model = request.model.strip() if request.model and request.model.strip() else self.settings.openai_model
        result = self.model_backend.complete(
            model=model,
            prompt=request.prompt,
            temperature=pinned_temperature(
                request.temperature, self.settings.openai_temperature, self.settings.pinned_temperature
            ),
            max_tokens=request.max_tokens or self.settings.max_completion_tokens,
            system=request.system,
        )
        if not result.text:
            message = "Model returned empty content"
            if result.error:
                message = f"{message}: {result.error}"
            raise UpstreamEmptyResponseError(message, details={"model": result.model_id})
        return PromptResponse(
            model=result.model_id,
            finish_reason=result.finish_reason,
            content=result.text,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            total_tokens=result.total_tokens,
        )

    def synthesize_and_provision(
        self,
        request: PromptRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CreateAndWaitResponse:
        descriptor = self.synthesizer.synthesize_and_provision(
            request.prompt,
            model=request.model,
            temperature=request.temperature,
            cancel_token=cancel_token,
        )
        return CreateAndWaitResponse.from_descriptor(descriptor)

    def ping(self) -> PingResponse:
        return self.identity.ping()

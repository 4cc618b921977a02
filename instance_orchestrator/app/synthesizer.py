"""Free-text intent -> ProvisioningRequest via a single model completion.

Model output is parsed strictly: anything that is not one JSON object of the
request shape fails, with no repair attempt and no re-prompt. Defaults are
then applied on top of whatever the model already defaulted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import ValidationError

from .config import Settings
from .errors import MalformedModelOutputError, UpstreamEmptyResponseError
from .model_backend import ChatCompletionBackend, pinned_temperature
from .prompting import build_synthesis_prompt
from .provisioner import ResourceProvisioner
from .schemas import ProvisioningRequest, ResourceDescriptor
from .waiter import CancellationToken

logger = logging.getLogger(__name__)

SOURCE_MODEL = "model"
SOURCE_DEFAULT = "default"

# Hand-off wait for synthesized requests; not configurable.
PROVISION_WAIT_TIMEOUT_SECONDS = 300.0
PROVISION_POLL_INTERVAL_SECONDS = 5.0


@dataclass
class SynthesizedRequest:
    request: ProvisioningRequest
    model_id: str
    provenance: Dict[str, str] = field(default_factory=dict)

    @property
    def defaulted_fields(self) -> List[str]:
        return sorted(name for name, source in self.provenance.items() if source == SOURCE_DEFAULT)


def parse_provisioning_request(text: str) -> ProvisioningRequest:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutputError(
            f"{exc.msg} (line {exc.lineno}, column {exc.colno})", raw_output=text
        ) from exc
    if not isinstance(data, dict):
        raise MalformedModelOutputError(f"expected a JSON object, got {type(data).__name__}", raw_output=text)
    try:
        return ProvisioningRequest.model_validate(data)
    except ValidationError as exc:
        diagnostic = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise MalformedModelOutputError(diagnostic, raw_output=text) from exc


class IntentSynthesizer:
    def __init__(self, settings: Settings, model_backend: ChatCompletionBackend, provisioner: ResourceProvisioner):
        self.model_backend = model_backend
        self.provisioner = provisioner
        self.default_model = settings.openai_model
        self.default_temperature = settings.openai_temperature
        self.pinned_temperature = settings.pinned_temperature
        self.max_completion_tokens = settings.max_completion_tokens
        self.fallback_key_name = settings.fallback_key_name
        self.fallback_instance_type = settings.fallback_instance_type
        self.fallback_security_groups = list(settings.fallback_security_groups)

    def synthesize(
        self,
        raw_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> SynthesizedRequest:
        model_id = model.strip() if model and model.strip() else self.default_model
        prompt = build_synthesis_prompt(raw_prompt)
        logger.info("Synthesis prompt built (%d chars) for model %s", len(prompt), model_id)
        logger.debug("Synthesis prompt:\n%s", prompt)

        result = self.model_backend.complete(
            model=model_id,
            prompt=prompt,
            temperature=pinned_temperature(temperature, self.default_temperature, self.pinned_temperature),
            max_tokens=self.max_completion_tokens,
        )
        if not result.text:
            message = "Model returned empty content"
            if result.error:
                message = f"{message}: {result.error}"
            raise UpstreamEmptyResponseError(message, details={"model": result.model_id})
        logger.info("Model output:\n%s", result.text)

        request = parse_provisioning_request(result.text)
        synthesized = self._apply_defaults(request, result.model_id)
        logger.info(
            "Synthesized request %s (defaulted: %s)",
            synthesized.request.model_dump(by_alias=True, exclude={"user_data"}),
            ", ".join(synthesized.defaulted_fields) or "none",
        )
        return synthesized

    def synthesize_and_provision(
        self,
        raw_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResourceDescriptor:
        synthesized = self.synthesize(raw_prompt, model=model, temperature=temperature)
        return self.provisioner.create_and_wait(
            synthesized.request,
            PROVISION_WAIT_TIMEOUT_SECONDS,
            PROVISION_POLL_INTERVAL_SECONDS,
            cancel_token,
        )

    def _apply_defaults(self, request: ProvisioningRequest, model_id: str) -> SynthesizedRequest:
        provenance = {name: SOURCE_MODEL for name in request.model_fields_set}
        updates = {}

        if not (request.key_name or "").strip():
            updates["key_name"] = self.fallback_key_name
        if not (request.instance_type or "").strip():
            updates["instance_type"] = self.fallback_instance_type
        if request.use_al2023 is None or "use_al2023" not in request.model_fields_set:
            updates["use_al2023"] = True
        if not request.security_groups:
            updates["security_groups"] = list(self.fallback_security_groups)

        for name in updates:
            provenance[name] = SOURCE_DEFAULT
        return SynthesizedRequest(
            request=request.model_copy(update=updates),
            model_id=model_id,
            provenance=provenance,
        )

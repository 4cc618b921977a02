from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

from .ami_resolver import AmiResolver
from .config import Settings
from .errors import InvalidArgumentError
from .schemas import ProvisioningRequest, ResourceDescriptor
from .waiter import CancellationToken, PollWaiter

logger = logging.getLogger(__name__)


def encode_user_data(script: str) -> str:
    return base64.b64encode(script.encode("utf-8")).decode("ascii")


class ResourceProvisioner:
    """Launches exactly one instance and returns its freshly fetched descriptor."""

    def __init__(self, settings: Settings, backend, ami_resolver: AmiResolver, waiter: PollWaiter):
        self.backend = backend
        self.ami_resolver = ami_resolver
        self.waiter = waiter
        self.default_instance_type = settings.default_instance_type

    def create(self, request: ProvisioningRequest) -> ResourceDescriptor:
        image_id = self.ami_resolver.resolve(request.use_al2023 is not False, request.ami_id)
        instance_type = self._resolve_instance_type(request.instance_type)
        params = self._build_launch_params(request, image_id, instance_type)

        instance_id = self.backend.run_instance(params)
        logger.info(
            "Launched instance %s (%s, %s)",
            instance_id,
            instance_type,
            image_id,
            extra={"instance_id": instance_id},
        )

        name = (request.name or "").strip()
        if name:
            self._tag_name(instance_id, name)

        try:
            return self.backend.describe(instance_id)
        except Exception:
            logger.error(
                "Describe failed right after launch; instance %s is running untracked",
                instance_id,
                extra={"instance_id": instance_id, "orphaned": True},
            )
            raise

    def create_and_wait(
        self,
        request: ProvisioningRequest,
        timeout_seconds: float,
        poll_interval_seconds: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResourceDescriptor:
        created = self.create(request)
        return self.waiter.wait(created.instance_id, "running", timeout_seconds, poll_interval_seconds, cancel_token)

    def _resolve_instance_type(self, requested: Optional[str]) -> str:
        if requested is None or not requested.strip():
            return self.default_instance_type
        value = requested.strip()
        if value not in self.backend.supported_instance_types():
            raise InvalidArgumentError(f"Unsupported instanceType: {value}", details={"instanceType": value})
        return value

    def _build_launch_params(self, request: ProvisioningRequest, image_id: str, instance_type: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "ImageId": image_id,
            "InstanceType": instance_type,
            "MinCount": 1,
            "MaxCount": 1,
        }
        key_name = (request.key_name or "").strip()
        if key_name:
            params["KeyName"] = key_name
        # Omitted security groups leave the VPC default group in place.
        if request.security_groups:
            params["SecurityGroupIds"] = list(request.security_groups)
        if request.user_data and request.user_data.strip():
            params["UserData"] = encode_user_data(request.user_data)
        return params

    def _tag_name(self, instance_id: str, name: str) -> None:
        try:
            self.backend.create_name_tag(instance_id, name)
        except Exception:
            logger.warning(
                "Name tag %r not applied to %s",
                name,
                instance_id,
                extra={"instance_id": instance_id},
                exc_info=True,
            )

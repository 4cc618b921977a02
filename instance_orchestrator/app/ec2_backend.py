"""EC2/SSM control-plane adapter backed by boto3.

This is the only module that talks to AWS for the instance lifecycle. It
turns botocore failures into the orchestrator's typed errors so nothing
above it has to inspect provider error-code strings.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, FrozenSet, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import InvalidArgumentError, ProviderError, ResourceNotFoundError, UpstreamLookupError
from .schemas import ResourceDescriptor

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"InvalidInstanceID.NotFound"})
_MALFORMED_CODES = frozenset({"InvalidInstanceID.Malformed", "InvalidParameterValue"})

# States from which each target can no longer be reached. Mirrors the
# failure acceptors of the EC2 instance_running / instance_terminated waiters.
_UNREACHABLE_FROM: Dict[str, FrozenSet[str]] = {
    "running": frozenset({"shutting-down", "terminated", "stopping"}),
    "terminated": frozenset({"pending", "stopping"}),
    "stopped": frozenset({"pending", "terminated"}),
}


def _client_error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _client_error_message(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Message", "") or str(exc)


def descriptor_from_instance(instance: Dict[str, Any]) -> ResourceDescriptor:
    """Map an EC2 ``Instance`` structure onto a :class:`ResourceDescriptor`."""
    tags = {tag.get("Key"): tag.get("Value") for tag in instance.get("Tags") or []}
    return ResourceDescriptor(
        instance_id=instance["InstanceId"],
        state=instance.get("State", {}).get("Name", "unknown"),
        instance_type=instance.get("InstanceType"),
        image_id=instance.get("ImageId"),
        public_dns_name=instance.get("PublicDnsName") or None,
        public_ip=instance.get("PublicIpAddress"),
        name_tag=tags.get("Name"),
        launch_time=instance.get("LaunchTime"),
        key_name=instance.get("KeyName"),
        security_group_ids=[group["GroupId"] for group in instance.get("SecurityGroups") or [] if group.get("GroupId")],
    )


class Ec2Backend:
    """Create/describe/terminate/tag calls plus SSM parameter lookups."""

    def __init__(self, settings: Settings, ec2_client: Any = None, ssm_client: Any = None):
        self.region = settings.aws_region
        client_config = Config(retries={"max_attempts": 5, "mode": "standard"})
        self._ec2 = ec2_client or boto3.client("ec2", region_name=self.region, config=client_config)
        self._ssm = ssm_client or boto3.client("ssm", region_name=self.region, config=client_config)
        self._instance_types: Optional[FrozenSet[str]] = None

    def supported_instance_types(self) -> FrozenSet[str]:
        """Instance types known to the EC2 service model shipped with botocore."""
        if self._instance_types is None:
            shape = self._ec2.meta.service_model.shape_for("InstanceType")
            self._instance_types = frozenset(shape.enum or [])
        return self._instance_types

    def get_parameter(self, name: str) -> str:
        try:
            response = self._ssm.get_parameter(Name=name)
        except ClientError as exc:
            code = _client_error_code(exc)
            if code == "ParameterNotFound":
                raise UpstreamLookupError(f"SSM parameter not found: {name}", details={"parameter": name}) from exc
            raise UpstreamLookupError(
                f"SSM lookup failed for {name}: {_client_error_message(exc)}",
                details={"parameter": name, "providerCode": code},
            ) from exc
        except BotoCoreError as exc:
            raise UpstreamLookupError(f"SSM lookup failed for {name}: {exc}", details={"parameter": name}) from exc

        value = (response.get("Parameter") or {}).get("Value")
        if not value:
            raise UpstreamLookupError(f"SSM parameter has no value: {name}", details={"parameter": name})
        return value

    def run_instance(self, params: Dict[str, Any]) -> str:
        """Launch one instance and return its id.

        ``params`` uses RunInstances names; ``UserData`` arrives base64-encoded.
        """
        run_args = dict(params)
        if "UserData" in run_args:
            # botocore base64-encodes UserData itself; hand it the raw bytes.
            run_args["UserData"] = base64.b64decode(run_args["UserData"])
        response = self._call(self._ec2.run_instances, **run_args)
        instances = response.get("Instances") or []
        if not instances:
            raise ProviderError("RunInstances returned no instances")
        return instances[0]["InstanceId"]

    def create_name_tag(self, instance_id: str, name: str) -> None:
        self._call(
            self._ec2.create_tags,
            instance_id=instance_id,
            Resources=[instance_id],
            Tags=[{"Key": "Name", "Value": name}],
        )

    def describe(self, instance_id: str) -> ResourceDescriptor:
        response = self._call(self._ec2.describe_instances, instance_id=instance_id, InstanceIds=[instance_id])
        for reservation in response.get("Reservations") or []:
            for instance in reservation.get("Instances") or []:
                return descriptor_from_instance(instance)
        raise ResourceNotFoundError(instance_id)

    def terminate(self, instance_id: str) -> Tuple[Optional[str], Optional[str]]:
        response = self._call(self._ec2.terminate_instances, instance_id=instance_id, InstanceIds=[instance_id])
        changes = response.get("TerminatingInstances") or []
        if not changes:
            raise ResourceNotFoundError(instance_id)
        change = changes[0]
        previous = (change.get("PreviousState") or {}).get("Name")
        current = (change.get("CurrentState") or {}).get("Name")
        return previous, current

    def is_terminal_failure(self, descriptor: ResourceDescriptor, target_state: str) -> bool:
        return descriptor.state in _UNREACHABLE_FROM.get(target_state, frozenset())

    def _call(self, operation, instance_id: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        try:
            return operation(**kwargs)
        except ClientError as exc:
            code = _client_error_code(exc)
            message = _client_error_message(exc)
            if code in _NOT_FOUND_CODES and instance_id:
                raise ResourceNotFoundError(instance_id, message) from exc
            if code in _MALFORMED_CODES:
                raise InvalidArgumentError(message, details={"providerCode": code}) from exc
            raise ProviderError(message, provider_code=code) from exc
        except BotoCoreError as exc:
            raise ProviderError(str(exc)) from exc

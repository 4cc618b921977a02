import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


AMI_ID_PATTERN = re.compile(r"ami-[a-f0-9]{8,17}")
INSTANCE_TYPE_PATTERN = re.compile(r"[a-z0-9]+\.[a-z0-9]+")
SECURITY_GROUP_PATTERN = re.compile(r"sg-[a-f0-9]{8,17}")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ProvisioningRequest(CamelModel):
    name: Optional[str] = Field(default=None, description="Name tag for the instance")
    key_name: Optional[str] = Field(default=None, description="Existing EC2 key pair name")
    use_al2023: Optional[bool] = Field(default=True, description="Amazon Linux 2023 (true) or Amazon Linux 2 (false)")
    ami_id: Optional[str] = Field(default=None, description="AMI id overriding the SSM lookup")
    instance_type: Optional[str] = Field(default=None, description="EC2 instance type, e.g. t2.micro")
    user_data: Optional[str] = Field(default=None, description="Plain-text user data script")
    security_groups: Optional[List[str]] = Field(default=None, description="VPC security group ids")

    @field_validator("ami_id")
    @classmethod
    def validate_ami_id(cls, value: Optional[str]) -> Optional[str]:
        value = _blank_to_none(value)
        if value is not None and not AMI_ID_PATTERN.fullmatch(value):
            raise ValueError(f"Invalid AMI id: {value}")
        return value

    @field_validator("instance_type")
    @classmethod
    def validate_instance_type(cls, value: Optional[str]) -> Optional[str]:
        value = _blank_to_none(value)
        if value is not None and not INSTANCE_TYPE_PATTERN.fullmatch(value):
            raise ValueError(f"Invalid instance type format (e.g., t2.micro): {value}")
        return value

    @field_validator("security_groups")
    @classmethod
    def validate_security_groups(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        cleaned = []
        for item in value:
            token = str(item or "").strip()
            if not SECURITY_GROUP_PATTERN.fullmatch(token):
                raise ValueError(f"Invalid security group id: {item}")
            cleaned.append(token)
        return cleaned


class ResourceDescriptor(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    instance_id: str
    state: str
    instance_type: Optional[str] = None
    image_id: Optional[str] = None
    public_dns_name: Optional[str] = None
    public_ip: Optional[str] = None
    name_tag: Optional[str] = None
    launch_time: Optional[datetime] = None
    key_name: Optional[str] = None
    security_group_ids: List[str] = Field(default_factory=list)


class CreateInstanceResponse(CamelModel):
    instance_id: str
    instance_type: Optional[str] = None
    image_id: Optional[str] = None
    state: str

    @classmethod
    def from_descriptor(cls, descriptor: ResourceDescriptor) -> "CreateInstanceResponse":
        return cls(
            instance_id=descriptor.instance_id,
            instance_type=descriptor.instance_type,
            image_id=descriptor.image_id,
            state=descriptor.state,
        )


class CreateAndWaitResponse(CamelModel):
    instance_id: str
    state: str
    instance_type: Optional[str] = None
    image_id: Optional[str] = None
    public_dns_name: Optional[str] = None
    public_ip: Optional[str] = None
    name_tag: Optional[str] = None
    launch_time: Optional[datetime] = Field(default=None, description="UTC timestamp when the instance launched")

    @classmethod
    def from_descriptor(cls, descriptor: ResourceDescriptor) -> "CreateAndWaitResponse":
        return cls(
            instance_id=descriptor.instance_id,
            state=descriptor.state,
            instance_type=descriptor.instance_type,
            image_id=descriptor.image_id,
            public_dns_name=descriptor.public_dns_name,
            public_ip=descriptor.public_ip,
            name_tag=descriptor.name_tag,
            launch_time=descriptor.launch_time,
        )


class InstanceStateResponse(CamelModel):
    instance_id: str
    state: str
    instance_type: Optional[str] = None
    image_id: Optional[str] = None
    public_dns_name: Optional[str] = None
    public_ip: Optional[str] = None

    @classmethod
    def from_descriptor(cls, descriptor: ResourceDescriptor) -> "InstanceStateResponse":
        return cls(
            instance_id=descriptor.instance_id,
            state=descriptor.state,
            instance_type=descriptor.instance_type,
            image_id=descriptor.image_id,
            public_dns_name=descriptor.public_dns_name,
            public_ip=descriptor.public_ip,
        )


class TerminateInstanceResponse(CamelModel):
    instance_id: str
    previous_state: Optional[str] = Field(default=None, description="State before the terminate call")
    current_state: Optional[str] = Field(default=None, description="Immediate state after the terminate call")
    final_state: Optional[str] = Field(default=None, description="Final state if wait=true")


class PromptRequest(CamelModel):
    system: Optional[str] = Field(default=None, description="Optional system instruction")
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)

    @field_validator("prompt")
    @classmethod
    def require_text(cls, value: str) -> str:
        if not str(value or "").strip():
            raise ValueError("prompt must not be blank")
        return value


class PromptResponse(CamelModel):
    model: str
    finish_reason: Optional[str] = None
    content: str = ""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class PingResponse(CamelModel):
    status: str
    region: str
    account: Optional[str] = None
    user_id: Optional[str] = None
    arn: Optional[str] = None
    latency_ms: int
    timestamp: str
    provider_hint: str
    error: str = ""

import logging
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Instance Lifecycle Orchestrator", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    al2_ami_parameter: str = Field(
        default="/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2",
        alias="AL2_AMI_PARAMETER",
    )
    al2023_ami_parameter: str = Field(
        default="/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
        alias="AL2023_AMI_PARAMETER",
    )
    default_instance_type: str = Field(default="t2.micro", alias="DEFAULT_INSTANCE_TYPE")
    wait_timeout_seconds: float = Field(default=300.0, alias="WAIT_TIMEOUT_SECONDS")
    poll_interval_seconds: float = Field(default=5.0, alias="POLL_INTERVAL_SECONDS")

    model_backend: str = Field(default="openai_compatible", alias="MODEL_BACKEND")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-5", alias="OPENAI_MODEL")
    openai_temperature: float = Field(default=1.0, alias="OPENAI_TEMPERATURE")
    pinned_temperature: float = Field(default=1.0, alias="PINNED_TEMPERATURE")
    max_completion_tokens: int = Field(default=25000, alias="MAX_COMPLETION_TOKENS")
    llm_timeout_seconds: int = Field(default=120, alias="LLM_TIMEOUT_SECONDS")

    fallback_key_name: str = Field(default="AWS-SAA-C003-RSA", alias="FALLBACK_KEY_NAME")
    fallback_instance_type: str = Field(default="t2.micro", alias="FALLBACK_INSTANCE_TYPE")
    fallback_security_groups: List[str] = Field(
        default_factory=lambda: [
            "sg-074b93f3fa5e149d4",
            "sg-03ab1f5cc977d5c85",
            "sg-064f4f6b368686377",
        ],
        alias="FALLBACK_SECURITY_GROUPS",
    )


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, str(settings.log_level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()

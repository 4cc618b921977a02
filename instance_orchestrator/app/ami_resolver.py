import logging
from typing import Optional

from .config import Settings

logger = logging.getLogger(__name__)


class AmiResolver:
    """Resolves "latest Amazon Linux" into a concrete AMI id via SSM public parameters."""

    def __init__(self, settings: Settings, backend):
        self.backend = backend
        self.al2_parameter = settings.al2_ami_parameter
        self.al2023_parameter = settings.al2023_ami_parameter

    def resolve(self, use_al2023: bool, override: Optional[str] = None) -> str:
        if override is not None and override.strip():
            return override

        parameter = self.al2023_parameter if use_al2023 else self.al2_parameter
        image_id = self.backend.get_parameter(parameter)
        logger.info("Resolved AMI %s from %s", image_id, parameter, extra={"ssm_parameter": parameter})
        return image_id

import logging
import time
from datetime import datetime, timezone
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .schemas import PingResponse

logger = logging.getLogger(__name__)


class IdentityProbe:
    """Validates the ambient AWS credentials with STS GetCallerIdentity."""

    def __init__(self, settings: Settings, sts_client: Any = None):
        self.region = settings.aws_region
        self._sts = sts_client

    def _client(self):
        if self._sts is None:
            self._sts = boto3.Session(region_name=self.region).client("sts")
        return self._sts

    def ping(self) -> PingResponse:
        started = time.perf_counter()
        account = user_id = arn = None
        error = ""
        try:
            identity = self._client().get_caller_identity()
            account = identity.get("Account")
            user_id = identity.get("UserId")
            arn = identity.get("Arn")
        except (BotoCoreError, ClientError) as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.warning("STS ping failed in %s: %s", self.region, error)

        return PingResponse(
            status="FAIL" if error else "OK",
            region=self.region,
            account=account,
            user_id=user_id,
            arn=arn,
            latency_ms=round((time.perf_counter() - started) * 1000),
            timestamp=datetime.now(timezone.utc).isoformat(),
            provider_hint="Using the default boto3 credential chain",
            error=error,
        )

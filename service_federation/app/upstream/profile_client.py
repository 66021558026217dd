"""
DingTalk "current user" profile client.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..errors import ProfileFetchError
from ..models import AccessToken


# DingTalk rejects standard Bearer authorization on this API
ACCESS_TOKEN_HEADER = "x-acs-dingtalk-access-token"


class ProfileClient:
    """Fetches the raw profile document of the token's owner."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        profile_url: str,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.http_client = http_client
        self.profile_url = profile_url
        self.metrics = metrics
        self.logger = get_logger("federation.profile_client")

    async def fetch_profile(self, access_token: AccessToken) -> Dict[str, Any]:
        headers = {ACCESS_TOKEN_HEADER: access_token.value}

        try:
            if self.metrics is not None:
                with self.metrics.time_operation("upstream_request_duration_seconds", call="profile"):
                    response = await self.http_client.get(self.profile_url, headers=headers)
            else:
                response = await self.http_client.get(self.profile_url, headers=headers)
        except httpx.HTTPError as e:
            self.logger.error("Profile endpoint unreachable", error=str(e), error_type=e.__class__.__name__)
            raise ProfileFetchError(details={"error_type": e.__class__.__name__}) from e

        if not response.is_success:
            self.logger.error("Profile endpoint returned error status", status_code=response.status_code)
            raise ProfileFetchError(details={"status_code": response.status_code})

        try:
            profile = response.json()
        except ValueError as e:
            raise ProfileFetchError("Profile endpoint returned non-JSON body") from e

        if not isinstance(profile, dict):
            raise ProfileFetchError("Profile document is not a JSON object")

        self.logger.info("Profile fetched", fields=sorted(profile))
        return profile

"""
Client for the pinyin transliteration sidecar.
"""

from typing import Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..errors import TransliterationError


class TransliterationClient:
    """Turns a display name into a Latin-script identifier via ``GET ?text=``."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.http_client = http_client
        self.url = url
        self.metrics = metrics
        self.logger = get_logger("federation.transliteration")

    async def transliterate(self, text: str) -> str:
        try:
            if self.metrics is not None:
                with self.metrics.time_operation("upstream_request_duration_seconds", call="transliteration"):
                    response = await self.http_client.get(self.url, params={"text": text})
            else:
                response = await self.http_client.get(self.url, params={"text": text})
        except httpx.HTTPError as e:
            self.logger.error("Transliteration service unreachable", error=str(e))
            raise TransliterationError(details={"error_type": e.__class__.__name__}) from e

        if not response.is_success:
            self.logger.error("Transliteration service returned error status", status_code=response.status_code)
            raise TransliterationError(details={"status_code": response.status_code})

        # Body is plain text, possibly spread over several lines
        result = "".join(response.text.splitlines()).strip()
        if not result:
            raise TransliterationError("Transliteration service returned an empty result")

        self.logger.info("Display name transliterated", result=result)
        return result

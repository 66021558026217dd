"""
Authorization code exchange against the DingTalk user token endpoint.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryError, SINGLE_RETRY, retry_on_exception
from ..cache.token_cache import ACCESS_TOKEN_CACHE_KEY, TokenCacheManager
from ..errors import TokenExchangeError
from ..models import AccessToken, ClientCredentials


GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"


class InvalidTokenResponse(Exception):
    """The token endpoint answered with nothing usable."""


class TokenExchangeClient:
    """Exchanges authorization codes for user access tokens.

    An empty, unparseable or token-less answer is retried exactly once;
    a second bad answer surfaces as :class:`TokenExchangeError`. Successful
    exchanges are written through to the client's token cache.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_url: str,
        cache_manager: TokenCacheManager,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.http_client = http_client
        self.token_url = token_url
        self.cache_manager = cache_manager
        self.metrics = metrics
        self.logger = get_logger("federation.token_client")

    @staticmethod
    def build_token_request(authorization_code: str, credentials: ClientCredentials) -> Dict[str, Any]:
        return {
            "clientId": credentials.client_id,
            "clientSecret": credentials.client_secret,
            "authCode": authorization_code,
            "grantType": GRANT_TYPE_AUTHORIZATION_CODE,
        }

    async def exchange(self, authorization_code: str, credentials: ClientCredentials) -> AccessToken:
        """Exchange ``authorization_code`` for an access token."""
        self.logger.info("Exchanging authorization code", client_id=credentials.client_id)

        try:
            token = await self._request_token(authorization_code, credentials)
        except RetryError as e:
            self.logger.error(
                "Token exchange failed",
                client_id=credentials.client_id,
                attempts=e.attempts,
                error=str(e.last_exception),
            )
            raise TokenExchangeError(details={"client_id": credentials.client_id}) from e

        self.cache_manager.get_cache(credentials.client_id).put(ACCESS_TOKEN_CACHE_KEY, token)
        self.logger.info(
            "Access token obtained",
            client_id=credentials.client_id,
            expires_in=token.expires_in_seconds,
        )
        return token

    async def reset_access_token(self, authorization_code: str, credentials: ClientCredentials) -> AccessToken:
        """Drop the cached token for this client and exchange again."""
        self.cache_manager.get_cache(credentials.client_id).invalidate(ACCESS_TOKEN_CACHE_KEY)
        return await self.exchange(authorization_code, credentials)

    @retry_on_exception((InvalidTokenResponse,), config=SINGLE_RETRY)
    async def _request_token(self, authorization_code: str, credentials: ClientCredentials) -> AccessToken:
        body = self.build_token_request(authorization_code, credentials)

        try:
            if self.metrics is not None:
                with self.metrics.time_operation("upstream_request_duration_seconds", call="token"):
                    response = await self.http_client.post(self.token_url, json=body)
            else:
                response = await self.http_client.post(self.token_url, json=body)
        except httpx.HTTPError as e:
            self._record_attempt("transport_error")
            raise InvalidTokenResponse(f"Token endpoint unreachable: {e.__class__.__name__}") from e

        try:
            payload = response.json()
        except ValueError as e:
            self._record_attempt("invalid_response")
            raise InvalidTokenResponse(
                f"Token endpoint returned non-JSON body (status {response.status_code})"
            ) from e

        token = self._parse_token(payload)
        if token is None:
            self._record_attempt("invalid_response")
            upstream_code = payload.get("code") if isinstance(payload, dict) else None
            raise InvalidTokenResponse(
                f"Token endpoint response missing accessToken (status {response.status_code}, code {upstream_code})"
            )

        self._record_attempt("ok")
        return token

    def _parse_token(self, payload: Any) -> Optional[AccessToken]:
        if not isinstance(payload, dict):
            return None

        value = payload.get("accessToken")
        if not isinstance(value, str) or not value:
            return None

        try:
            expires_in = int(payload.get("expireIn") or 0)
        except (TypeError, ValueError):
            self.logger.warning("Ignoring non-numeric expireIn", expire_in=payload.get("expireIn"))
            expires_in = 0

        return AccessToken(value=value, expires_in_seconds=expires_in)

    def _record_attempt(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_exchange_attempts_total", status=status)

"""
DingTalk identity provider: read-only configuration plus the capabilities
the callback flow composes (authorization URL, exchange, fetch, normalize).
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from shared.config import FederationConfig
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.token_cache import TokenCacheManager
from ..identity.normalizer import IdentityNormalizer, Transliterator
from ..models import (
    AccessToken,
    AuthenticationSession,
    CanonicalIdentity,
    ClientCredentials,
    FederatedIdentityContext,
)
from ..upstream.profile_client import ProfileClient
from ..upstream.token_client import TokenExchangeClient
from ..upstream.transliteration import TransliterationClient


OAUTH2_PARAMETER_CLIENT_ID = "client_id"
OAUTH2_PARAMETER_REDIRECT_URI = "redirect_uri"
OAUTH2_PARAMETER_RESPONSE_TYPE = "response_type"
OAUTH2_PARAMETER_SCOPE = "scope"
OAUTH2_PARAMETER_STATE = "state"
OAUTH2_PARAMETER_PROMPT = "prompt"

DEFAULT_RESPONSE_TYPE = "code"
# DingTalk's consent screen must be forced for the v2 login flow
DEFAULT_PROMPT = "consent"


class DingTalkIdentityProvider:
    """Federates logins against DingTalk.

    Owns the ``httpx.AsyncClient`` shared by every upstream call unless one
    is injected, and closes it in :meth:`close`.
    """

    def __init__(
        self,
        config: FederationConfig,
        cache_manager: TokenCacheManager,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        transliterator: Optional[Transliterator] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.alias = config.provider_alias
        self.credentials = ClientCredentials(
            client_id=config.dingtalk_client_id,
            client_secret=config.dingtalk_client_secret,
        )
        self.logger = get_logger("federation.provider")

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.http_timeout_seconds)

        self.token_client = TokenExchangeClient(
            self.http_client, config.dingtalk_token_url, cache_manager, metrics=metrics
        )
        self.profile_client = ProfileClient(self.http_client, config.dingtalk_profile_url, metrics=metrics)
        self.transliterator = transliterator or TransliterationClient(
            self.http_client, config.transliteration_url, metrics=metrics
        )
        self.normalizer = IdentityNormalizer(self.transliterator, config.email_domain)

    @property
    def client_id(self) -> str:
        return self.credentials.client_id

    @property
    def default_scope(self) -> str:
        return self.config.dingtalk_default_scope

    def create_authorization_url(self, state: str, redirect_uri: str) -> str:
        """Build the browser redirect to the DingTalk consent screen."""
        params = {
            OAUTH2_PARAMETER_CLIENT_ID: self.client_id,
            OAUTH2_PARAMETER_REDIRECT_URI: redirect_uri,
            OAUTH2_PARAMETER_RESPONSE_TYPE: DEFAULT_RESPONSE_TYPE,
            OAUTH2_PARAMETER_SCOPE: self.default_scope,
            OAUTH2_PARAMETER_STATE: state,
            OAUTH2_PARAMETER_PROMPT: DEFAULT_PROMPT,
        }
        url = f"{self.config.dingtalk_authorization_url}?{urlencode(params)}"
        self.logger.info(
            "Authorization URL created",
            authorization_url=self.config.dingtalk_authorization_url,
            client_id=self.client_id,
            redirect_uri=redirect_uri,
            scope=self.default_scope,
        )
        return url

    async def exchange_code(self, authorization_code: str) -> AccessToken:
        return await self.token_client.exchange(authorization_code, self.credentials)

    async def reset_access_token(self, authorization_code: str) -> AccessToken:
        return await self.token_client.reset_access_token(authorization_code, self.credentials)

    async def fetch_profile(self, access_token: AccessToken) -> Dict[str, Any]:
        return await self.profile_client.fetch_profile(access_token)

    async def normalize(self, profile: Dict[str, Any]) -> CanonicalIdentity:
        return await self.normalizer.normalize(profile)

    def build_context(
        self,
        identity: CanonicalIdentity,
        profile: Dict[str, Any],
        access_token: AccessToken,
        auth_session: Optional[AuthenticationSession] = None,
    ) -> FederatedIdentityContext:
        return FederatedIdentityContext(
            identity=identity,
            idp_alias=self.alias,
            profile=profile,
            access_token=access_token,
            auth_session=auth_session,
        )

    async def check_transliteration(self) -> str:
        """Return 'ok' if the transliteration sidecar answers, otherwise 'error'."""
        try:
            response = await self.http_client.get(self.config.transliteration_url, params={"text": "ok"})
            return "ok" if response.is_success else "error"
        except httpx.HTTPError as e:
            self.logger.warning("Transliteration health check failed", error=str(e))
            return "error"

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

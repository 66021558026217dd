"""
Federation service for the Access Layer.
"""

from typing import Dict, Optional

import httpx
from fastapi import Query, Request
from fastapi.responses import RedirectResponse

from shared.base_service import BaseService
from shared.config import FederationConfig
from shared.observability import get_observability_manager
from .broker.events import FederationAuditRecorder
from .broker.flow import FederationFlowController
from .broker.provider import DingTalkIdentityProvider
from .broker.session import BrokerSessionCallback
from .cache.token_cache import TokenCacheManager
from .errors import InvalidRedirectUriError


class FederationService(BaseService):
    """DingTalk identity federation service."""

    def __init__(
        self,
        config: Optional[FederationConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__("federation", 8020, config)

        self.cache_manager = TokenCacheManager()

        # Tracing is configured by BaseService
        self.observability = get_observability_manager(
            "federation",
            log_level=self.config.log_level,
            metrics=self.metrics,
        )

        self.provider = DingTalkIdentityProvider(
            self.config,
            self.cache_manager,
            http_client=http_client,
            metrics=self.metrics,
        )
        self.session_callback = BrokerSessionCallback(
            self.config.state_secret,
            self.config.state_ttl_seconds,
        )
        self.audit = FederationAuditRecorder(self.observability)
        self.flow = FederationFlowController(
            self.provider,
            self.session_callback,
            self.audit,
            metrics=self.metrics,
        )

        self._setup_federation_routes()
        self.app.state.federation_service = self

    async def startup(self) -> None:
        await super().startup()
        self.cache_manager.start()

    async def shutdown(self) -> None:
        await self.provider.close()
        self.cache_manager.stop()
        await super().shutdown()

    def _setup_federation_routes(self):
        """Set up federation-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "federation",
                "message": "Access Layer - Federation Service",
                "idp_alias": self.provider.alias,
                "version": "1.0.0"
            }

        @self.app.get("/federation/login")
        async def login(request: Request, redirect_uri: Optional[str] = Query(None)):
            """Start a federated login by redirecting to the DingTalk consent screen."""
            callback_uri = self.config.callback_url or str(request.url_for("federation_callback"))
            if redirect_uri is not None and redirect_uri != callback_uri:
                raise InvalidRedirectUriError(details={"redirect_uri": redirect_uri})

            state = self.session_callback.begin_login(callback_uri, self.provider.client_id)
            return RedirectResponse(
                self.provider.create_authorization_url(state, callback_uri),
                status_code=307,
            )

        @self.app.get("/federation/callback", name="federation_callback")
        async def callback(
            state: Optional[str] = Query(None),
            auth_code: Optional[str] = Query(None, alias="authCode"),
            error: Optional[str] = Query(None),
        ):
            """Redirect target for the DingTalk authorization server."""
            result = await self.flow.handle_callback(state, auth_code, error)
            self.logger.info(
                "Federation callback handled",
                outcome=result.state.value,
                transitions=[s.value for s in result.transitions],
            )
            return result.response

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check federation dependencies."""
        return {
            "token_cache": "ok" if self.cache_manager.running else "stopped",
            "transliteration": await self.provider.check_transliteration(),
        }


def create_app(config: Optional[FederationConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = FederationService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = FederationService()
    service.run()

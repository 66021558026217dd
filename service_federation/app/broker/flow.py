"""
Callback flow controller for federated logins.

State machine::

    AWAITING_REDIRECT -> STATE_VALIDATED -> ERROR_RECEIVED | CODE_RECEIVED
    CODE_RECEIVED -> EXCHANGED -> PROFILE_FETCHED -> NORMALIZED -> DELIVERED

Terminal states are DELIVERED, CANCELLED and FAILED. Every FAILED
transition records one audit event before the response is built. Pipeline
errors are logged with full detail and shown to the user only as the
generic unexpected-error page.
"""

from typing import Any, Callable, List, Optional

from shared.logging import get_logger, set_federation_context
from shared.metrics import MetricsCollector
from shared.tracing import add_span_attributes, add_span_event, trace_function
from ..errors import (
    ACCESS_DENIED,
    INTERACTION_REQUIRED,
    LOGIN_REQUIRED,
    MISSING_STATE_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    FederationError,
    InteractionRequiredError,
    MissingStateError,
    UnexpectedFederationError,
    UserCancelledError,
)
from ..models import CallbackResult, FederationRequest, FlowState
from .events import FederationAuditRecorder
from .pages import render_error_page
from .provider import DingTalkIdentityProvider
from .session import AuthenticationCallback


class FederationFlowController:
    """Handles one redirect callback from the upstream authorization server."""

    def __init__(
        self,
        provider: DingTalkIdentityProvider,
        callback: AuthenticationCallback,
        audit: FederationAuditRecorder,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.provider = provider
        self.callback = callback
        self.audit = audit
        self.metrics = metrics
        self.logger = get_logger("federation.flow")

    @trace_function("federation_callback")
    async def handle_callback(
        self,
        state: Optional[str],
        authorization_code: Optional[str],
        error: Optional[str],
    ) -> CallbackResult:
        transitions: List[FlowState] = [FlowState.AWAITING_REDIRECT]
        set_federation_context(idp_alias=self.provider.alias)
        add_span_attributes(idp_alias=self.provider.alias)

        if state is None:
            return self._fail(
                transitions,
                MissingStateError(),
                lambda: render_error_page(MISSING_STATE_MESSAGE),
            )

        try:
            auth_session = self.callback.get_and_verify_authentication_session(state)
        except Exception as e:
            self.logger.error("Failed to verify authentication session", error=str(e), exc_info=True)
            return self._fail(
                transitions,
                self._classify(e),
                lambda: render_error_page(UNEXPECTED_ERROR_MESSAGE),
            )
        self._advance(transitions, FlowState.STATE_VALIDATED)

        if error is not None:
            self._advance(transitions, FlowState.ERROR_RECEIVED)
            self.logger.error("Upstream returned error for broker login", error=error, idp_alias=self.provider.alias)

            if error == ACCESS_DENIED:
                self._advance(transitions, FlowState.CANCELLED)
                self._record_outcome(FlowState.CANCELLED)
                return CallbackResult(
                    state=FlowState.CANCELLED,
                    transitions=transitions,
                    response=self.callback.cancelled(self.provider.alias),
                    error=UserCancelledError(),
                )
            if error in (LOGIN_REQUIRED, INTERACTION_REQUIRED):
                return self._fail(
                    transitions,
                    InteractionRequiredError(error),
                    lambda: self.callback.error(error),
                )
            return self._fail(
                transitions,
                UnexpectedFederationError(details={"upstream_error": error}),
                lambda: self.callback.error(UNEXPECTED_ERROR_MESSAGE),
            )

        if not authorization_code:
            return self._fail(
                transitions,
                UnexpectedFederationError(details={"reason": "no_code_or_error"}),
                lambda: render_error_page(UNEXPECTED_ERROR_MESSAGE),
            )

        self._advance(transitions, FlowState.CODE_RECEIVED)
        request = FederationRequest(
            authorization_code=authorization_code,
            state=state,
            redirect_uri=auth_session.redirect_uri,
        )

        try:
            access_token = await self.provider.exchange_code(request.authorization_code)
            self._advance(transitions, FlowState.EXCHANGED)

            profile = await self.provider.fetch_profile(access_token)
            self._advance(transitions, FlowState.PROFILE_FETCHED)

            identity = await self.provider.normalize(profile)
            self._advance(transitions, FlowState.NORMALIZED)
        except Exception as e:
            self.logger.error(
                "Failed to make identity provider oauth callback",
                stage=transitions[-1].value,
                error=str(e),
                exc_info=True,
            )
            return self._fail(
                transitions,
                self._classify(e),
                lambda: render_error_page(UNEXPECTED_ERROR_MESSAGE),
            )

        set_federation_context(federated_id=identity.federated_id)
        add_span_attributes(federated_id=identity.federated_id)
        context = self.provider.build_context(identity, profile, access_token, auth_session)
        response = self.callback.authenticated(context)
        self._advance(transitions, FlowState.DELIVERED)
        self.audit.login_success(self.provider.alias, identity.federated_id)
        self._record_outcome(FlowState.DELIVERED)

        return CallbackResult(
            state=FlowState.DELIVERED,
            transitions=transitions,
            response=response,
            context=context,
        )

    def _advance(self, transitions: List[FlowState], state: FlowState) -> None:
        transitions.append(state)
        add_span_event("federation_state", state=state.value)

    def _fail(
        self,
        transitions: List[FlowState],
        error: FederationError,
        respond: Callable[[], Any],
    ) -> CallbackResult:
        self._advance(transitions, FlowState.FAILED)
        self.audit.login_failure(
            self.provider.alias,
            error.code,
            stage=transitions[-2].value,
        )
        self._record_outcome(FlowState.FAILED)
        return CallbackResult(
            state=FlowState.FAILED,
            transitions=transitions,
            response=respond(),
            error=error,
        )

    @staticmethod
    def _classify(error: Exception) -> FederationError:
        if isinstance(error, FederationError):
            return error
        return UnexpectedFederationError(details={"error_type": error.__class__.__name__})

    def _record_outcome(self, state: FlowState) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("federation_logins_total", outcome=state.value)

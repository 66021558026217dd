"""
Tests for the federated login callback flow.
"""

import json
from unittest.mock import AsyncMock, call, patch

import pytest

from service_federation.app.broker.events import (
    IDENTITY_PROVIDER_LOGIN,
    IDENTITY_PROVIDER_LOGIN_FAILURE,
    FederationAuditRecorder,
)
from service_federation.app.broker.flow import FederationFlowController
from service_federation.app.broker.provider import DingTalkIdentityProvider
from service_federation.app.broker.session import BrokerSessionCallback
from service_federation.app.cache.token_cache import TokenCacheManager
from service_federation.app.errors import (
    InteractionRequiredError,
    InvalidStateError,
    MalformedProfileError,
    MissingStateError,
    ProfileFetchError,
    TokenExchangeError,
    TransliterationError,
    UnexpectedFederationError,
    UserCancelledError,
)
from service_federation.app.models import FlowState
from shared.metrics import MetricsCollector
from shared.test_helpers import (
    PINYIN_PATH,
    PROFILE_PATH,
    TOKEN_PATH,
    FederationDataFactory,
    FederationTestEnvironment,
    MockDingTalkUpstream,
)


CALLBACK_URI = "https://broker.example/federation/callback"


class FlowHarness:
    """Wires a flow controller against a scripted upstream."""

    def __init__(self, upstream=None):
        self.upstream = upstream or MockDingTalkUpstream()
        self.config = FederationTestEnvironment.make_config()
        self.metrics = MetricsCollector("federation")
        self.provider = DingTalkIdentityProvider(
            self.config,
            TokenCacheManager(),
            http_client=self.upstream.client(),
            metrics=self.metrics,
        )
        self.callback = BrokerSessionCallback(self.config.state_secret)
        self.audit = FederationAuditRecorder()
        self.flow = FederationFlowController(self.provider, self.callback, self.audit, metrics=self.metrics)

    def begin_login(self):
        return self.callback.begin_login(CALLBACK_URI, self.config.dingtalk_client_id)

    def failures(self):
        return [event for event in self.audit.events if event.error == IDENTITY_PROVIDER_LOGIN_FAILURE]

    def outcome_count(self, outcome):
        return self.metrics.registry.get_sample_value("federation_logins_total", {"outcome": outcome})


def page_key(response):
    body = response.body.decode()
    marker = 'data-message-key="'
    start = body.index(marker) + len(marker)
    return body[start:body.index('"', start)]


@pytest.mark.asyncio
async def test_successful_login_delivers_identity():
    """A valid state and code end in DELIVERED with the normalized identity."""
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    assert result.succeeded
    assert result.transitions == [
        FlowState.AWAITING_REDIRECT,
        FlowState.STATE_VALIDATED,
        FlowState.CODE_RECEIVED,
        FlowState.EXCHANGED,
        FlowState.PROFILE_FETCHED,
        FlowState.NORMALIZED,
        FlowState.DELIVERED,
    ]
    identity = result.context.identity
    assert identity.federated_id == "union-zhangsan"
    assert identity.username == "zhangsan"
    assert identity.email == "zhangsan@dcx.com"
    assert result.context.auth_session.redirect_uri == CALLBACK_URI

    body = json.loads(result.response.body)
    assert result.response.status_code == 200
    assert body["status"] == "authenticated"
    assert body["user"]["attributes"] == {"mobile": ["13800000000"]}

    assert harness.failures() == []
    assert [event.event_type for event in harness.audit.events] == [IDENTITY_PROVIDER_LOGIN]
    assert harness.outcome_count("delivered") == 1


@pytest.mark.asyncio
async def test_missing_state_fails_without_upstream_calls():
    """No state means the missing-state page and a single audit event."""
    harness = FlowHarness()

    result = await harness.flow.handle_callback(None, "auth-code", None)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, MissingStateError)
    assert result.response.status_code == 502
    assert page_key(result.response) == "identityProviderMissingStateMessage"
    assert harness.upstream.requests == []
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
async def test_invalid_state_fails_with_unexpected_page():
    harness = FlowHarness()

    result = await harness.flow.handle_callback("forged-state", "auth-code", None)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, InvalidStateError)
    assert page_key(result.response) == "identityProviderUnexpectedErrorMessage"
    assert harness.upstream.requests == []
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
async def test_two_invalid_token_answers_fail_login():
    """The exchange is tried exactly twice, then the login fails generically."""
    harness = FlowHarness(MockDingTalkUpstream(token_answers=[{"code": "invalidAuthCode"}]))

    result = await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, TokenExchangeError)
    assert result.transitions[-2:] == [FlowState.CODE_RECEIVED, FlowState.FAILED]
    assert result.response.status_code == 502
    assert page_key(result.response) == "identityProviderUnexpectedErrorMessage"
    assert len(harness.upstream.requests_to(TOKEN_PATH)) == 2
    assert harness.upstream.requests_to(PROFILE_PATH) == []
    assert len(harness.failures()) == 1
    assert harness.outcome_count("failed") == 1


@pytest.mark.asyncio
async def test_access_denied_cancels_without_failure_event():
    """A user who declines consent is cancelled, not failed."""
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), None, "access_denied")

    assert result.state is FlowState.CANCELLED
    assert result.transitions[-2:] == [FlowState.ERROR_RECEIVED, FlowState.CANCELLED]
    assert isinstance(result.error, UserCancelledError)
    assert json.loads(result.response.body)["status"] == "cancelled"
    assert harness.upstream.requests == []
    assert harness.failures() == []
    assert harness.outcome_count("cancelled") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", ["login_required", "interaction_required"])
async def test_interaction_required_passes_error_through(error):
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), None, error)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, InteractionRequiredError)
    assert result.error.error == error
    assert result.response.status_code == 400
    assert page_key(result.response) == error
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
async def test_other_upstream_error_is_unexpected():
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), None, "server_error")

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, UnexpectedFederationError)
    assert page_key(result.response) == "identityProviderUnexpectedErrorMessage"
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
async def test_error_takes_precedence_over_code():
    """When both are present the error branch wins and nothing is exchanged."""
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), "auth-code", "access_denied")

    assert result.state is FlowState.CANCELLED
    assert harness.upstream.requests == []


@pytest.mark.asyncio
async def test_neither_code_nor_error_fails():
    harness = FlowHarness()

    result = await harness.flow.handle_callback(harness.begin_login(), None, None)

    assert result.state is FlowState.FAILED
    assert result.response.status_code == 502
    assert page_key(result.response) == "identityProviderUnexpectedErrorMessage"
    assert harness.upstream.requests == []
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("upstream,expected_error,last_state", [
    (MockDingTalkUpstream(profile_status=500), ProfileFetchError, FlowState.EXCHANGED),
    (MockDingTalkUpstream(pinyin_unreachable=True), TransliterationError, FlowState.PROFILE_FETCHED),
    (MockDingTalkUpstream(profile={"nick": "张三"}), MalformedProfileError, FlowState.PROFILE_FETCHED),
])
async def test_pipeline_failures_show_generic_page(upstream, expected_error, last_state):
    """Pipeline errors are recorded precisely but shown generically."""
    harness = FlowHarness(upstream)

    result = await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, expected_error)
    assert result.transitions[-2:] == [last_state, FlowState.FAILED]
    assert result.response.status_code == 502
    assert page_key(result.response) == "identityProviderUnexpectedErrorMessage"
    assert len(harness.failures()) == 1
    assert harness.failures()[0].details["reason"] == expected_error().code


@pytest.mark.asyncio
async def test_transliteration_request_carries_display_name():
    harness = FlowHarness()

    await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    request = harness.upstream.requests_to(PINYIN_PATH)[0]
    assert request.url.params["text"] == "张三"


@pytest.mark.asyncio
async def test_failure_is_audited_before_response_is_built():
    """The audit event exists by the time the error response is rendered."""
    harness = FlowHarness()
    seen = []
    original_error = harness.callback.error

    def recording_error(message, status_code=None):
        seen.append(len(harness.failures()))
        return original_error(message, status_code)

    harness.callback.error = recording_error

    await harness.flow.handle_callback(harness.begin_login(), None, "login_required")

    assert seen == [1]


@pytest.mark.asyncio
async def test_replayed_state_fails():
    """A state can complete at most one login."""
    harness = FlowHarness(MockDingTalkUpstream(token_answers=[
        FederationDataFactory.create_token_response(access_token="first"),
        FederationDataFactory.create_token_response(access_token="second"),
    ]))
    state = harness.begin_login()

    first = await harness.flow.handle_callback(state, "auth-code", None)
    second = await harness.flow.handle_callback(state, "auth-code", None)

    assert first.succeeded
    assert second.state is FlowState.FAILED
    assert isinstance(second.error, InvalidStateError)
    assert len(harness.upstream.requests_to(TOKEN_PATH)) == 1


@pytest.mark.asyncio
async def test_unclassified_exception_becomes_unexpected_error():
    """Errors outside the federation taxonomy are reported as unexpected."""
    harness = FlowHarness()

    with patch.object(harness.provider, "normalize", AsyncMock(side_effect=RuntimeError("boom"))):
        result = await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    assert result.state is FlowState.FAILED
    assert isinstance(result.error, UnexpectedFederationError)
    assert result.error.details == {"error_type": "RuntimeError"}
    assert "boom" not in result.response.body.decode()
    assert len(harness.failures()) == 1


@pytest.mark.asyncio
async def test_code_for_mixed_case_profile_delivers_lowercased_identity():
    """Code abc123 for union id U1 delivers the record keyed by u1."""
    harness = FlowHarness(MockDingTalkUpstream(
        profile={"unionId": "U1", "openId": "O1", "nick": "张伟", "mobile": "123"},
        pinyin={"张伟": "zhangwei"},
    ))

    result = await harness.flow.handle_callback(harness.begin_login(), "abc123", None)

    assert result.state is FlowState.DELIVERED
    assert result.context.identity.model_dump() == {
        "federated_id": "u1",
        "username": "zhangwei",
        "first_name": "伟",
        "last_name": "张",
        "email": "zhangwei@dcx.com",
        "attributes": {"mobile": "123"},
    }
    token_request = harness.upstream.requests_to(TOKEN_PATH)[0]
    assert json.loads(token_request.content)["authCode"] == "abc123"
    assert harness.failures() == []


@pytest.mark.asyncio
async def test_callback_span_carries_federation_attributes():
    """The callback span is tagged with the provider alias and federated id."""
    harness = FlowHarness()

    with patch("service_federation.app.broker.flow.add_span_attributes") as add_attributes:
        await harness.flow.handle_callback(harness.begin_login(), "auth-code", None)

    assert add_attributes.call_args_list == [
        call(idp_alias="dingtalk"),
        call(federated_id="union-zhangsan"),
    ]

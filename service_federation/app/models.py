"""
Data models for the Federation Service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FederationRequest(BaseModel):
    """A redirect callback carrying an authorization code. Consumed once."""
    model_config = ConfigDict(frozen=True)

    authorization_code: str
    state: str
    redirect_uri: str


class ClientCredentials(BaseModel):
    """Client identifier and secret registered with DingTalk."""
    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str = Field(..., repr=False)


class AccessToken(BaseModel):
    """User access token returned by the token endpoint."""
    model_config = ConfigDict(frozen=True)

    value: str = Field(..., repr=False)
    expires_in_seconds: int = 0


class CanonicalIdentity(BaseModel):
    """Normalized, framework-agnostic federated user."""

    federated_id: str = Field(..., min_length=1)
    username: str
    first_name: str
    last_name: str
    email: str
    attributes: Dict[str, str] = Field(default_factory=dict)


@dataclass
class AuthenticationSession:
    """Pending broker session created when the login redirect was issued."""
    session_id: str
    redirect_uri: str
    client_id: str
    created_at: float
    consumed: bool = False


@dataclass
class FederatedIdentityContext:
    """Everything the provider hands to the hosting framework on success."""
    identity: CanonicalIdentity
    idp_alias: str
    profile: Dict[str, Any] = field(default_factory=dict)
    access_token: Optional[AccessToken] = field(default=None, repr=False)
    auth_session: Optional[AuthenticationSession] = None


class FlowState(str, Enum):
    """States of the callback state machine."""
    AWAITING_REDIRECT = "awaiting_redirect"
    STATE_VALIDATED = "state_validated"
    ERROR_RECEIVED = "error_received"
    CODE_RECEIVED = "code_received"
    EXCHANGED = "exchanged"
    PROFILE_FETCHED = "profile_fetched"
    NORMALIZED = "normalized"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class CallbackResult:
    """Outcome of one callback: final state, path taken and the response."""
    state: FlowState
    transitions: List[FlowState]
    response: Any = None
    error: Optional[Exception] = None
    context: Optional[FederatedIdentityContext] = None

    @property
    def succeeded(self) -> bool:
        return self.state is FlowState.DELIVERED

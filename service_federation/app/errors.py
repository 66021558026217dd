"""
Federation error taxonomy.

Every failure a federated login can end in maps onto one of these classes.
Pipeline errors (exchange, fetch, normalize) never reach the end user
verbatim; the flow controller downgrades them to the generic
unexpected-error message.
"""

from typing import Any, Dict, Optional

from shared.errors import AccessLayerException


# User-facing message keys, shared with the error page renderer
MISSING_STATE_MESSAGE = "identityProviderMissingStateMessage"
UNEXPECTED_ERROR_MESSAGE = "identityProviderUnexpectedErrorMessage"

# OAuth2 error codes the callback distinguishes
ACCESS_DENIED = "access_denied"
LOGIN_REQUIRED = "login_required"
INTERACTION_REQUIRED = "interaction_required"


class FederationError(AccessLayerException):
    """Base class for federated login failures."""

    status_code = 502

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class MissingStateError(FederationError):
    """Callback arrived without a ``state`` parameter."""

    status_code = 400

    def __init__(self, message: str = "Missing state parameter", details: Optional[Dict[str, Any]] = None):
        super().__init__("MISSING_STATE", message, details)


class InvalidStateError(FederationError):
    """The ``state`` parameter did not match a pending session."""

    status_code = 400

    def __init__(self, message: str = "Invalid or expired state", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_STATE", message, details)


class UserCancelledError(FederationError):
    """The user denied consent on the upstream screen."""

    status_code = 401

    def __init__(self, message: str = "User cancelled login", details: Optional[Dict[str, Any]] = None):
        super().__init__("USER_CANCELLED", message, details)


class InteractionRequiredError(FederationError):
    """Upstream answered ``login_required`` or ``interaction_required``."""

    status_code = 401

    def __init__(self, error: str, details: Optional[Dict[str, Any]] = None):
        self.error = error
        super().__init__("UPSTREAM_INTERACTION_REQUIRED", error, details)


class TokenExchangeError(FederationError):
    """No access token could be obtained for the authorization code."""

    def __init__(self, message: str = "No access token available", details: Optional[Dict[str, Any]] = None):
        super().__init__("TOKEN_EXCHANGE_FAILED", message, details)


class ProfileFetchError(FederationError):
    """The profile endpoint failed or returned a non-2xx response."""

    def __init__(self, message: str = "Failed to fetch user profile", details: Optional[Dict[str, Any]] = None):
        super().__init__("PROFILE_FETCH_FAILED", message, details)


class TransliterationError(FederationError):
    """The display name could not be transliterated into a username."""

    def __init__(self, message: str = "Failed to transliterate display name", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRANSLITERATION_FAILED", message, details)


class MalformedProfileError(FederationError):
    """The profile lacks a required identifier."""

    def __init__(self, message: str = "Profile is missing unionId", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_PROFILE", message, details)


class UnexpectedFederationError(FederationError):
    """Catch-all for anything else that breaks a federated login."""

    def __init__(self, message: str = UNEXPECTED_ERROR_MESSAGE, details: Optional[Dict[str, Any]] = None):
        super().__init__("UNEXPECTED_ERROR", message, details)


class InvalidRedirectUriError(FederationError):
    """A login asked to return to a URI other than the registered callback."""

    status_code = 400

    def __init__(self, message: str = "Redirect URI is not the registered callback", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_REDIRECT_URI", message, details)

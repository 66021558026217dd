"""
Broker-side session handling and authentication continuations.

The OAuth ``state`` is an HS256 JWT naming a pending session. Each pending
session can be consumed by exactly one callback.
"""

import secrets
import threading
import time
from typing import Any, Dict, Optional, Protocol

from fastapi.responses import JSONResponse
from jose import JWTError, jwt

from shared.logging import get_logger
from ..errors import InvalidStateError
from ..identity.normalizer import update_brokered_user
from ..models import AuthenticationSession, FederatedIdentityContext
from .pages import render_error_page


STATE_ALGORITHM = "HS256"


class AuthenticationCallback(Protocol):
    """Continuations of the hosting authentication framework."""

    def get_and_verify_authentication_session(self, state: str) -> AuthenticationSession:
        ...

    def authenticated(self, context: FederatedIdentityContext) -> Any:
        ...

    def cancelled(self, idp_alias: str) -> Any:
        ...

    def error(self, message: str) -> Any:
        ...


class PendingSessionStore:
    """In-memory pending sessions, consumable once and expiring after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int = 600):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, AuthenticationSession] = {}
        self._lock = threading.Lock()

    def create(self, redirect_uri: str, client_id: str) -> AuthenticationSession:
        session = AuthenticationSession(
            session_id=secrets.token_urlsafe(24),
            redirect_uri=redirect_uri,
            client_id=client_id,
            created_at=time.time(),
        )
        with self._lock:
            self._purge_expired(session.created_at)
            self._sessions[session.session_id] = session
        return session

    def consume(self, session_id: str) -> AuthenticationSession:
        with self._lock:
            self._purge_expired(time.time())
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise InvalidStateError(details={"reason": "unknown_or_consumed_session"})
        session.consumed = True
        return session

    def _purge_expired(self, now: float) -> None:
        expired = [
            session_id for session_id, session in self._sessions.items()
            if now - session.created_at > self.ttl_seconds
        ]
        for session_id in expired:
            del self._sessions[session_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class StateCodec:
    """Signs and verifies the OAuth ``state`` parameter."""

    def __init__(self, secret: str, ttl_seconds: int = 600):
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def encode(self, session: AuthenticationSession) -> str:
        issued_at = int(session.created_at)
        claims = {
            "sid": session.session_id,
            "cid": session.client_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(claims, self.secret, algorithm=STATE_ALGORITHM)

    def decode(self, state: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(state, self.secret, algorithms=[STATE_ALGORITHM])
        except JWTError as e:
            raise InvalidStateError(details={"reason": "bad_signature_or_expired"}) from e

        if not isinstance(claims.get("sid"), str):
            raise InvalidStateError(details={"reason": "missing_session_id"})
        return claims


class BrokerSessionCallback:
    """In-service implementation of :class:`AuthenticationCallback`."""

    def __init__(self, secret: str, ttl_seconds: int = 600):
        self.store = PendingSessionStore(ttl_seconds)
        self.codec = StateCodec(secret, ttl_seconds)
        self.logger = get_logger("federation.session")

    def begin_login(self, redirect_uri: str, client_id: str) -> str:
        """Create a pending session and return its signed state."""
        session = self.store.create(redirect_uri, client_id)
        self.logger.info("Pending session created", client_id=client_id)
        return self.codec.encode(session)

    def get_and_verify_authentication_session(self, state: str) -> AuthenticationSession:
        claims = self.codec.decode(state)
        session = self.store.consume(claims["sid"])
        if session.client_id != claims.get("cid"):
            raise InvalidStateError(details={"reason": "client_mismatch"})
        return session

    def authenticated(self, context: FederatedIdentityContext) -> JSONResponse:
        identity = context.identity
        return JSONResponse(
            status_code=200,
            content={
                "status": "authenticated",
                "idp_alias": context.idp_alias,
                "identity": identity.model_dump(),
                "user": update_brokered_user({}, identity),
            },
        )

    def cancelled(self, idp_alias: str) -> JSONResponse:
        return JSONResponse(
            status_code=200,
            content={"status": "cancelled", "idp_alias": idp_alias},
        )

    def error(self, message: str, status_code: Optional[int] = None):
        return render_error_page(message, status_code or 400)

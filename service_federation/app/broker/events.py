"""
Audit events for federated logins.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from shared.logging import get_logger
from shared.observability import ObservabilityManager


IDENTITY_PROVIDER_LOGIN = "IDENTITY_PROVIDER_LOGIN"
IDENTITY_PROVIDER_LOGIN_FAILURE = "identity_provider_login_failure"


@dataclass
class AuditEvent:
    """One recorded login event."""
    event_type: str
    idp_alias: str
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class FederationAuditRecorder:
    """Records login events through observability and keeps the most recent ones."""

    def __init__(self, observability: Optional[ObservabilityManager] = None, max_events: int = 1000):
        self.observability = observability
        self.logger = get_logger("federation.audit")
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)

    @property
    def events(self) -> List[AuditEvent]:
        return list(self._events)

    def login_failure(self, idp_alias: str, reason: str, **details: Any) -> AuditEvent:
        event = AuditEvent(
            event_type=IDENTITY_PROVIDER_LOGIN,
            idp_alias=idp_alias,
            error=IDENTITY_PROVIDER_LOGIN_FAILURE,
            details={"reason": reason, **details},
        )
        self._events.append(event)

        if self.observability is not None:
            self.observability.log_error(
                IDENTITY_PROVIDER_LOGIN_FAILURE,
                reason,
                event_type=IDENTITY_PROVIDER_LOGIN,
                idp_alias=idp_alias,
                **details,
            )
        else:
            self.logger.warning(
                "Federated login failed",
                event_type=IDENTITY_PROVIDER_LOGIN,
                error=IDENTITY_PROVIDER_LOGIN_FAILURE,
                idp_alias=idp_alias,
                reason=reason,
                **details,
            )
        return event

    def login_success(self, idp_alias: str, federated_id: str) -> AuditEvent:
        event = AuditEvent(
            event_type=IDENTITY_PROVIDER_LOGIN,
            idp_alias=idp_alias,
            details={"federated_id": federated_id},
        )
        self._events.append(event)

        if self.observability is not None:
            self.observability.log_business_event(
                "federated_login",
                idp_alias=idp_alias,
                federated_id=federated_id,
            )
        else:
            self.logger.info("Federated login succeeded", idp_alias=idp_alias, federated_id=federated_id)
        return event

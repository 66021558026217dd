"""
Identity broker package.

- provider: read-only provider configuration plus the exchange, fetch and
  normalize capabilities.
- flow: the callback state machine.
- session: pending-session store, signed state and the in-service
  authentication continuations.
- events: audit events for failed federated logins.
"""

"""
Federation Service package for the Access Layer.

This package brokers logins against DingTalk: it redirects the browser to
the upstream consent screen, exchanges the returned authorization code for
an access token, fetches the user profile and normalizes it into a
canonical identity record for the hosting authentication framework.

- app.main: FastAPI entrypoint wiring the login and callback routes.
- app.broker: Identity provider, callback flow controller, session
  continuations and audit events.
- app.upstream: HTTP clients for the token, profile and transliteration
  endpoints.
- app.identity: Profile normalization into canonical identity records.
- app.cache: Per-client access token caches.

Design notes:
- Module import must not perform network calls; clients are created by
  the service and closed at shutdown.
- Use the shared/ utilities for logging, metrics, tracing, and errors.
"""

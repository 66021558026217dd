"""
Upstream HTTP clients.

Each client wraps one DingTalk (or sidecar) endpoint and classifies its
failures into the federation error taxonomy. Clients share the provider's
``httpx.AsyncClient`` so connect/read timeouts apply to every call.
"""

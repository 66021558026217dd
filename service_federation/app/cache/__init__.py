"""
Cache package for the Federation Service.

Holds one in-process access token cache per federated client, created
lazily and exactly once per client identifier.
"""

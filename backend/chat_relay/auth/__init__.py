"""Session lookup for identity-linked visitors.

Services:
    - SessionStore: in-memory session id -> linked profile map with TTL expiry.
"""

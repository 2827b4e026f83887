"""Relay access control, authentication state, event rate limiting and benchmark helpers."""

__version__ = "0.4.8"

__all__ = [
    "auth",
    "bench",
    "permission",
    "ratelimit",
]
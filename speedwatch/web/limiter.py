"""
Rate Limiter - SlowAPI configuration for API rate limiting
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address


def build_limiter(rate_limit: str) -> Limiter:
    """
    Create a per-client limiter applied to every route by SlowAPIMiddleware.

    An empty rate_limit disables limiting.
    """
    rate_limit = rate_limit.strip()
    if not rate_limit:
        return Limiter(key_func=get_remote_address, enabled=False)
    return Limiter(key_func=get_remote_address, default_limits=[rate_limit])

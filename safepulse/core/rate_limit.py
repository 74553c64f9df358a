"""
rate_limit.py — Global rate limiter for the analytics endpoints.

Analytics and report generation run a full aggregation fan-out on every
call (they are never cached), so they are throttled per client IP.
The dashboard metrics endpoint is served from the TTL cache and is left
unthrottled.

Usage in routes:
    @router.get("/analytics")
    @limiter.limit(settings.rate_limit_analytics)
    async def analytics(request: Request, ...):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

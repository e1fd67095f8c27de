from plantstore.middleware.rate_limit import (
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitRule,
    default_rules,
)
from plantstore.middleware.request_logging import RequestLoggingMiddleware


__all__ = [
    "InMemoryRateLimitStore",
    "RateLimitMiddleware",
    "RateLimitRule",
    "RequestLoggingMiddleware",
    "default_rules",
]

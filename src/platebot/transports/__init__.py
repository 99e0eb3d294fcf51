from .limiter import ChatRateLimiter, RetryAfter

__all__ = [
    "ChatRateLimiter",
    "RetryAfter",
]

"""Internal machinery: HTTP and retry."""

from .http import Auth, BearerAuth, HttpClient, HttpError
from .retry import RetryPolicy, backoff, is_transient, retry

__all__ = [
    "Auth",
    "BearerAuth",
    "HttpClient",
    "HttpError",
    "RetryPolicy",
    "backoff",
    "is_transient",
    "retry",
]

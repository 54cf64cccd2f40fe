"""Failure taxonomy shared by the oracle providers, the retriers and the pipeline.

The retriers only look at the class of an exception:

    TransientUpstreamError   → retried with backoff
    UpstreamRateLimitedError → retried, honouring the retry hint when present
    PayloadTooLargeError     → never retried; callers change path instead
    MalformedResponseError   → never retried; recovered to a neutral outcome
    FatalError               → never retried; propagates out of the pipeline
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for every classified failure raised inside argus_core."""

    retryable: bool = False


class TransientUpstreamError(ReviewError):
    """Oracle or publisher momentarily unavailable (timeout, 5xx, open breaker)."""

    retryable = True


class UpstreamRateLimitedError(TransientUpstreamError):
    """The upstream answered 429. ``retry_after`` is the server's hint in seconds, if any."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class PayloadTooLargeError(ReviewError):
    """The upstream rejected the request body as too large (413 or context overflow)."""


class MalformedResponseError(ReviewError):
    """The oracle answered, but the answer cannot be read as a review."""


class FatalError(ReviewError):
    """Configuration, authentication or programming errors. Never retried."""


class ConfigError(FatalError):
    pass


class MessageTooLargeError(FatalError):
    """A formatted message exceeded the platform limit. Always a formatter bug."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"message of {length} characters exceeds the platform limit of {limit}")
        self.length = length
        self.limit = limit


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ReviewError) and exc.retryable

"""Base oracle implementing the Template Method pattern.

All providers share the same call sequence:
    analyze() → _build_system_prompt() + _build_user_prompt()
              → breaker check → _call_api()   ← differs per provider
              → on failure: _classify()        ← differs per provider

Subclasses implement two things only:
  - _call_api: make one raw async API call and return the text response
  - _classify: map the SDK's exception to the argus_core.errors taxonomy

A provider makes exactly one attempt per analyze() call. Retrying is the
caller's job (argus_core.retry), because the caller is the one that knows
whether a failure should change path (payload too large) or be retried.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from argus_core.breaker import CircuitBreaker
from argus_core.errors import (
    FatalError,
    PayloadTooLargeError,
    ReviewError,
    TransientUpstreamError,
    UpstreamRateLimitedError,
)
from argus_core.models import ContextMetadata

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096

# Substrings upstreams use in 400 responses when the prompt exceeds the context window.
_TOO_LARGE_MARKERS = ("context_length_exceeded", "maximum context length", "prompt is too long", "too large")


def classify_status(status: int | None, message: str, retry_after: float | None = None) -> ReviewError:
    """Map an HTTP status from any upstream to the error taxonomy."""
    lowered = message.lower()
    if status == 413 or (status == 400 and any(m in lowered for m in _TOO_LARGE_MARKERS)):
        return PayloadTooLargeError(message)
    if status == 429:
        return UpstreamRateLimitedError(message, retry_after=retry_after)
    if status is None or status in (408, 409) or status >= 500:
        return TransientUpstreamError(message)
    return FatalError(message)


def parse_retry_after(headers) -> float | None:
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return None


class BaseReviewer(ABC):
    MODEL: str = ""
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float = 0.3

    def __init__(self, model: str | None = None, guidelines: str = "", breaker: CircuitBreaker | None = None):
        self.model = model or self.MODEL
        self.guidelines = guidelines
        self.breaker = breaker or CircuitBreaker(self.__class__.__name__)

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def analyze(self, content: str, context: ContextMetadata) -> str:
        """Send one unit of content to the model and return its raw text reply.

        Raises a ReviewError subclass on failure; never retries.
        """
        system = self._build_system_prompt(self.guidelines)
        user = self._build_user_prompt(content, context)
        self.breaker.before_call()
        try:
            raw = await self._call_api(system, user)
        except asyncio.CancelledError:
            raise
        except ReviewError:
            raise
        except Exception as e:
            error = self._classify(e)
            if isinstance(error, TransientUpstreamError):
                self.breaker.record_failure()
            logger.debug("%s call failed: %s → %s", self.__class__.__name__, e, type(error).__name__)
            raise error from e
        self.breaker.record_success()
        return raw or ""

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response."""

    @abstractmethod
    def _classify(self, exc: Exception) -> ReviewError:
        """Translate an SDK exception into the argus_core.errors taxonomy."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self, guidelines: str) -> str:
        extra = f"\n\nTeam guidelines:\n{guidelines}" if guidelines else ""
        return f"""You are an expert code reviewer giving constructive feedback on pull requests.
Identify bugs, security issues and performance problems, suggest maintainability
improvements, and acknowledge well-written code. Be specific, concise and actionable.{extra}

Respond with only a JSON object of this shape:
{{
  "summary": {{
    "verdict": "approve" | "request_changes" | "comment",
    "confidence": 0.0-1.0,
    "mainIssues": ["..."],
    "positives": ["..."]
  }},
  "comments": [
    {{
      "file": "path/to/file",
      "line": <line number in the new file>,
      "severity": "critical" | "important" | "minor",
      "category": "bug" | "security" | "performance" | "style" | "improvement",
      "message": "...",
      "suggestion": "optional replacement code"
    }}
  ],
  "overallFeedback": "..."
}}"""

    def _build_user_prompt(self, content: str, context: ContextMetadata) -> str:
        return f"""Please review this change:

**Title**: {context.title}
**Description**: {context.description or "No description provided"}
**Author**: {context.author}
**Target Branch**: {context.base_branch}

**Changes**:
```diff
{content}
```"""

from __future__ import annotations

from argus_core.errors import ReviewError, TransientUpstreamError
from argus_core.providers.base import BaseReviewer, classify_status, parse_retry_after


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None, guidelines: str = "", breaker=None):
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. Install it with: pip install anthropic"
            )
        super().__init__(model=model, guidelines=guidelines, breaker=breaker)
        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        from anthropic.types import TextBlock

        response = await self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

    def _classify(self, exc: Exception) -> ReviewError:
        if isinstance(exc, self._sdk.APIConnectionError):
            return TransientUpstreamError(f"{type(exc).__name__}: {exc}")
        if isinstance(exc, self._sdk.APIStatusError):
            # 529 "overloaded" falls into the >= 500 transient bucket.
            return classify_status(exc.status_code, str(exc), parse_retry_after(exc.response.headers))
        return TransientUpstreamError(f"{type(exc).__name__}: {exc}")

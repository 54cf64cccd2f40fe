from __future__ import annotations

try:
    import openai as _openai
except ImportError:
    _openai = None  # type: ignore[assignment]

from argus_core.errors import ReviewError, TransientUpstreamError
from argus_core.providers.base import BaseReviewer, classify_status, parse_retry_after


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    # Lower than Anthropic's to lean toward deterministic JSON output.
    TEMPERATURE = 0.2
    BASE_URL: str | None = None

    def __init__(self, api_key: str, model: str | None = None, guidelines: str = "", breaker=None):
        if _openai is None:
            raise ImportError(
                "The 'openai' package is required for this provider. Install it with: pip install openai"
            )
        super().__init__(model=model, guidelines=guidelines, breaker=breaker)
        self.client = _openai.AsyncOpenAI(api_key=api_key, base_url=self.BASE_URL, max_retries=0)

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        return response.choices[0].message.content or ""

    def _classify(self, exc: Exception) -> ReviewError:
        if isinstance(exc, _openai.APIConnectionError):
            return TransientUpstreamError(f"{type(exc).__name__}: {exc}")
        if isinstance(exc, _openai.APIStatusError):
            return classify_status(exc.status_code, str(exc), parse_retry_after(exc.response.headers))
        return TransientUpstreamError(f"{type(exc).__name__}: {exc}")


class GitHubModelsReviewer(OpenAIReviewer):
    """GitHub Models exposes an OpenAI-compatible endpoint authenticated with a GitHub token."""

    MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.3
    BASE_URL = "https://models.inference.ai.azure.com"

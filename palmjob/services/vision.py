import logging

import httpx
from openai import APIConnectionError, APIError, AsyncOpenAI

from palmjob.core.config import Settings
from palmjob.services.exceptions import ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


def build_openai_client(settings: Settings) -> AsyncOpenAI | None:
    """Shared async OpenAI client; None when no key is configured (calls then fail fast)."""
    if not settings.is_openai_configured():
        logger.warning("OPENAI_API_KEY is not set; AI calls will fail with a configuration error")
        return None
    # No retries: every provider call is attempted exactly once
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout_seconds,
        max_retries=0,
    )


class VisionClient:
    """Chat-completions call with a text prompt and a list of images (data URIs)."""

    def __init__(self, client: AsyncOpenAI | None, model: str) -> None:
        self._client = client
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        image_urls: list[str],
        max_tokens: int,
        temperature: float,
        detail: str = "low",
    ) -> str:
        if self._client is None:
            raise ProviderNotConfiguredError("OPENAI_API_KEY is not set")
        content: list[dict] = [{"type": "text", "text": user_prompt}]
        content.extend(
            {"type": "image_url", "image_url": {"url": url, "detail": detail}} for url in image_urls
        )
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": content},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (APIConnectionError, httpx.TimeoutException) as exc:
            raise ProviderError(f"AI provider network error: {exc}") from exc
        except APIError as exc:
            raise ProviderError(f"AI provider API error: {exc}") from exc

        if not response.choices:
            raise ProviderError("AI returned no choices")
        text = response.choices[0].message.content
        if not text:
            raise ProviderError("AI returned empty response")
        return text

"""
Job character card (DALL-E).

Standard prompt template with the job title (and optional gender) filled in.
Optional enrichment: a failure here never fails the analysis.
"""
import logging

import httpx
from openai import APIConnectionError, APIError, AsyncOpenAI

from palmjob.models import Gender, IllustrationOutcome
from palmjob.services.exceptions import ProviderError
from palmjob.services.images import sniff_image_type

logger = logging.getLogger(__name__)

IMAGE_SIZE = "1024x1024"
IMAGE_QUALITY = "standard"
IMAGE_STYLE = "vivid"

# Style: cute 3D character; purple gradient background with palm-line patterns
PROMPT_TEMPLATE = """Create a magical and whimsical 3D character illustration for "{job_title}".

Visual Style:
- Pixar/Disney-inspired 3D character design
- Soft, dreamy lighting with magical glow effects
- Purple-to-pink gradient background with subtle sparkles
- Palm line patterns subtly integrated into the background as decorative elements
- Square composition (1:1 ratio)

Character Design:
- Friendly, approachable character with warm expression{gender_line}
- Wearing stylized outfit or uniform that represents the job
- Holding or surrounded by symbolic tools/objects of the profession
- Slight floating or magical pose to convey whimsy
- Big expressive eyes with a gentle smile

Atmosphere:
- Mystical and enchanting mood
- Soft particle effects like stars or floating lights
- Clean, professional quality suitable for social media cards
- No text or letters in the image

The character should embody the essence of "{job_title}" in a creative, fantastical way that feels both unique and universally appealing."""

GENDER_HINTS = {
    Gender.male: "\n- The character is a man",
    Gender.female: "\n- The character is a woman",
}


def build_prompt(job_title: str, gender: Gender | None = None) -> str:
    gender_line = GENDER_HINTS.get(gender, "") if gender else ""
    return PROMPT_TEMPLATE.format(job_title=job_title, gender_line=gender_line)


class CardIllustrator:
    def __init__(
        self,
        client: AsyncOpenAI | None,
        http: httpx.AsyncClient,
        model: str = "dall-e-3",
    ) -> None:
        self._client = client
        self._http = http
        self._model = model

    async def generate(self, job_title: str, gender: Gender | None = None) -> IllustrationOutcome:
        """Never raises: any failure comes back as IllustrationOutcome(error=...)."""
        if self._client is None:
            logger.error("OPENAI_API_KEY is not set; skipping card image")
            return IllustrationOutcome(error="AI service is not configured.")
        prompt = build_prompt(job_title, gender)
        logger.info("Generating card image for job: %s", job_title)
        try:
            response = await self._client.images.generate(
                model=self._model,
                prompt=prompt,
                n=1,
                size=IMAGE_SIZE,
                quality=IMAGE_QUALITY,
                style=IMAGE_STYLE,
            )
        except (APIConnectionError, httpx.TimeoutException) as e:
            logger.warning("DALL-E network error: %s", e)
            return IllustrationOutcome(error=f"Image provider network error: {e}")
        except APIError as e:
            logger.warning("DALL-E API error: %s", e)
            return IllustrationOutcome(error=f"Image provider API error: {e}")
        except Exception as e:
            logger.exception("Unexpected error in generate: %s", e)
            return IllustrationOutcome(error=str(e) or type(e).__name__)

        image_url = response.data[0].url if response.data else None
        if not image_url:
            return IllustrationOutcome(error="Image URL missing from response.")
        logger.info("Card image generated for: %s", job_title)
        return IllustrationOutcome(image_url=image_url)

    async def download(self, url: str) -> tuple[bytes, str]:
        """Fetches a generated image for the durable copy. Returns (bytes, content type)."""
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderError(f"Card image download failed: {exc}") from exc
        data = response.content
        content_type = sniff_image_type(data)
        if content_type is None:
            raise ProviderError("Card image download is not an image")
        return data, content_type

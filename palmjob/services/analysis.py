"""
Palm reading → whimsical job recommendation (OpenAI Vision).

Both palms go in one request; the model answers with a title, a one-line
comment and a two-paragraph interpretation.
"""
import logging
import random

from palmjob.models import AnalysisOutcome, JobResult
from palmjob.services.diagnostics import PromptLogRecorder
from palmjob.services.exceptions import ProviderError, ProviderNotConfiguredError, ResponseParseError
from palmjob.services.parsing import extract_json_object
from palmjob.services.prompts import PromptLoader, PromptParts
from palmjob.services.vision import VisionClient

logger = logging.getLogger(__name__)

PROMPT_FILE = "palm-analysis.prompt"
LOG_TYPE = "palm_analysis"
TEMPERATURE = 0.8
MAX_TOKENS = 600
IMAGE_DETAIL = "low"

FALLBACK_PROMPT = PromptParts(
    system="""You are a playful, creative palm reader. Look at photos of both palms (left and right) and recommend one unusual, delightful "quirky job" that suits the person.

## Reading guide
Interpret what you see creatively:
- **Life line**: energy, vitality, passion for life
- **Head line**: way of thinking, creativity, problem solving
- **Heart line**: feelings, relationships, empathy
- **Fate line**: career, direction, sense of purpose
- **Hand shape**: finger length, palm size, overall proportions

## Reading both hands
- **Left hand**: innate potential, inner talents
- **Right hand**: abilities already expressed, conscious effort
- Compare the differences and similarities of the two hands

## Rules
1. Mention real features of the lines (depth, length, branches)
2. Keep a humorous, positive tone
3. Never say anything hurtful
4. Recommend a **different, unique** quirky job every time (inventing new ones is encouraged)
5. Make the reading feel specific and personal

## Quirky job ideas (for inspiration only)
Space Junk Collector, Emotion Proxy, Professional Sleep Tester, Cloud Watcher, Plant Whisperer, Luck Courier, Dream Interpreter, Laughter Therapist, Colour Consultant, Keeper of Secrets, Mood Curator, Idea Harvester, Scent Architect, Memory Organiser, Starlight Collector, Rainbow Hunter, Silence Curator

## Response format (JSON only)
{
  "title": "job title (2-4 words)",
  "shortComment": "one-line comment (under 40 characters, one emoji)",
  "interpretation": "the reading (2 paragraphs, 2-3 sentences each)"
}""",
    user="""Look at these two palm photos (left and right) together and recommend a quirky job that suits this person.
The first image is the left hand, the second is the right hand.
Combine what both palms show. Reply in JSON only.""",
)

FALLBACK_JOBS: tuple[JobResult, ...] = (
    JobResult(
        title="Luck Courier",
        short_comment="Delivers good fortune 🍀",
        interpretation=(
            "Both palms are full of bright energy. Your left hand shows a natural optimism, "
            "and your right hand shows the effort you put into lifting the people around you.\n\n"
            "A job delivering luck to others suits you perfectly. Good things will happen wherever you go!"
        ),
    ),
    JobResult(
        title="Dream Interpreter",
        short_comment="Reads the stories of the night 🌙",
        interpretation=(
            "The intuition line on your left hand is clear, and lines of imagination cross on your right. "
            "You are well connected to the world of the subconscious.\n\n"
            "Interpreting people's dreams and finding their meaning is the job for you. "
            "Turn the stories of the night into wisdom for the day!"
        ),
    ),
    JobResult(
        title="Mood Curator",
        short_comment="Puts feelings in order 💝",
        interpretation=(
            "Your left hand shows a delicate sensitivity and your right hand a gift for expression. "
            "Together they strike a beautiful balance.\n\n"
            "You have a talent for gathering people's feelings and curating them beautifully. "
            "Become the one who collects and shares the world's moods!"
        ),
    ),
)


def fallback_job(rng: random.Random | None = None) -> JobResult:
    """Canned result used when the analysis call fails; picked at random."""
    chooser = rng or random
    return chooser.choice(FALLBACK_JOBS).model_copy()


def job_from_payload(payload: dict[str, object]) -> JobResult:
    title = payload.get("title")
    interpretation = payload.get("interpretation")
    if not isinstance(title, str) or not title.strip():
        raise ResponseParseError("'title' must be a non-empty string")
    if not isinstance(interpretation, str) or not interpretation.strip():
        raise ResponseParseError("'interpretation' must be a non-empty string")
    short_comment = payload.get("shortComment")
    return JobResult(
        title=title.strip(),
        short_comment=short_comment.strip() if isinstance(short_comment, str) and short_comment.strip() else None,
        interpretation=interpretation.strip(),
    )


class PalmAnalyzer:
    def __init__(
        self,
        vision: VisionClient,
        prompts: PromptLoader,
        prompt_log: PromptLogRecorder | None = None,
    ) -> None:
        self._vision = vision
        self._prompts = prompts
        self._prompt_log = prompt_log

    async def analyze(self, left_uri: str, right_uri: str, analysis_id: str | None = None) -> AnalysisOutcome:
        """Never raises: failures come back as AnalysisOutcome(error=...)."""
        prompt = await self._prompts.get()
        content: str | None = None
        try:
            content = await self._vision.complete(
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                image_urls=[left_uri, right_uri],
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                detail=IMAGE_DETAIL,
            )
            job = job_from_payload(extract_json_object(content))
        except ResponseParseError as e:
            logger.error("Failed to parse job from analysis response (%s): %s", e, (content or "")[:500])
            self._log(analysis_id, prompt, raw=content, error=str(e))
            return AnalysisOutcome(error=str(e))
        except ProviderNotConfiguredError as e:
            logger.error("Palm analysis not possible: %s", e)
            return AnalysisOutcome(error=str(e))
        except ProviderError as e:
            logger.warning("OpenAI analysis error for %s: %s", analysis_id, e)
            self._log(analysis_id, prompt, error=str(e))
            return AnalysisOutcome(error=str(e))
        except Exception as e:
            logger.exception("Unexpected error in analyze: %s", e)
            return AnalysisOutcome(error=str(e) or type(e).__name__)

        self._log(analysis_id, prompt, raw=content, job=job)
        return AnalysisOutcome(job=job)

    def _log(
        self,
        analysis_id: str | None,
        prompt: PromptParts,
        raw: str | None = None,
        job: JobResult | None = None,
        error: str | None = None,
    ) -> None:
        if self._prompt_log is None:
            return
        payload: dict = {
            "prompt": {"system": prompt.system, "user": prompt.user},
            "metadata": {
                "model": self._vision.model,
                "temperature": TEMPERATURE,
                "maxTokens": MAX_TOKENS,
                "imageDetail": IMAGE_DETAIL,
                "promptLength": prompt.length,
            },
        }
        if raw is not None or job is not None:
            response: dict = {"rawResponse": raw}
            if job is not None:
                response.update(job.model_dump(by_alias=True, exclude_none=True))
            payload["response"] = response
        if error is not None:
            payload["error"] = error
        self._prompt_log.record(analysis_id, LOG_TYPE, payload)

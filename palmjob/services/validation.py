"""
Palm photo validation (OpenAI Vision).

Cheap gate before the analysis call: checks that both uploads are palms, the
right hands, and good enough to read. Low-detail images, few tokens, low
temperature.
"""
import logging

from palmjob.models import ERROR_MESSAGES, UploadErrorType, ValidationOutcome
from palmjob.services.diagnostics import PromptLogRecorder
from palmjob.services.exceptions import ProviderError, ProviderNotConfiguredError, ResponseParseError
from palmjob.services.parsing import extract_json_object
from palmjob.services.prompts import PromptLoader, PromptParts
from palmjob.services.vision import VisionClient

logger = logging.getLogger(__name__)

PROMPT_FILE = "palm-validation.prompt"
LOG_TYPE = "palm_validation"
TEMPERATURE = 0.3
MAX_TOKENS = 200
IMAGE_DETAIL = "low"

FALLBACK_PROMPT = PromptParts(
    system="""You check palm photos before a palm reading. Decide whether the uploaded images are palm photos and whether their quality is good enough to analyse.

## Checks
1. Is each image a palm?
2. Are the hands the expected ones (left, then right)?
3. Image quality: whole palm visible, bright enough, sharp enough, palm lines visible

## Response format (JSON only)
{
  "isValid": true/false,
  "errorType": "NOT_PALM" | "PALM_CROPPED" | "TOO_DARK" | "TOO_BLURRY" | "HAND_MISMATCH" | null,
  "details": {
    "isPalm": true/false,
    "isLeftHand": true/false,
    "isRightHand": true/false,
    "isComplete": true/false,
    "isBright": true/false,
    "isClear": true/false,
    "hasPalmLines": true/false
  },
  "message": "short explanation of the result"
}""",
    user="""Check the following two images:
1. First image: must be a LEFT palm
2. Second image: must be a RIGHT palm

For each image check that it is a palm, that its quality is good enough to analyse and that the hand is the right one. Reply in JSON only.""",
)


def outcome_from_payload(payload: dict[str, object]) -> ValidationOutcome:
    """Maps the model's JSON onto the closed error set."""
    is_valid = payload.get("isValid")
    if not isinstance(is_valid, bool):
        logger.error("Invalid validation result format: %s", payload)
        return ValidationOutcome.rejected(UploadErrorType.UNKNOWN)
    message = payload.get("message") if isinstance(payload.get("message"), str) else ""
    details = payload.get("details") if isinstance(payload.get("details"), dict) else {}
    if is_valid:
        return ValidationOutcome.accepted(message=message, details=details)

    raw_type = payload.get("errorType")
    if not raw_type:
        error_type = UploadErrorType.NOT_PALM
    else:
        try:
            error_type = UploadErrorType(str(raw_type).strip().upper())
        except ValueError:
            logger.warning("Unknown validation errorType %r", raw_type)
            error_type = UploadErrorType.UNKNOWN
    return ValidationOutcome(
        is_valid=False,
        error_type=error_type,
        message=message or ERROR_MESSAGES[error_type],
        details=details,
    )


class PalmValidator:
    def __init__(
        self,
        vision: VisionClient,
        prompts: PromptLoader,
        prompt_log: PromptLogRecorder | None = None,
    ) -> None:
        self._vision = vision
        self._prompts = prompts
        self._prompt_log = prompt_log

    async def validate(self, left_uri: str, right_uri: str, analysis_id: str | None = None) -> ValidationOutcome:
        """Never raises: every failure becomes an UNKNOWN rejection."""
        prompt = await self._prompts.get()
        try:
            content = await self._vision.complete(
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                image_urls=[left_uri, right_uri],
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                detail=IMAGE_DETAIL,
            )
        except ProviderNotConfiguredError as e:
            logger.error("Palm validation not possible: %s", e)
            return ValidationOutcome.rejected(UploadErrorType.UNKNOWN, "AI service is not configured.")
        except ProviderError as e:
            logger.warning("OpenAI validation error for %s: %s", analysis_id, e)
            self._log(analysis_id, prompt, error=str(e))
            return ValidationOutcome.rejected(UploadErrorType.UNKNOWN)
        except Exception as e:
            logger.exception("Unexpected error in validate: %s", e)
            return ValidationOutcome.rejected(UploadErrorType.UNKNOWN)

        try:
            payload = extract_json_object(content)
        except ResponseParseError as e:
            logger.error("Failed to parse JSON from validation response (%s): %s", e, content[:500])
            self._log(analysis_id, prompt, raw=content, error=str(e))
            return ValidationOutcome.rejected(UploadErrorType.UNKNOWN)

        outcome = outcome_from_payload(payload)
        self._log(
            analysis_id,
            prompt,
            raw=content,
            error=outcome.error_type.value if outcome.error_type else None,
        )
        return outcome

    def _log(self, analysis_id: str | None, prompt: PromptParts, raw: str | None = None, error: str | None = None) -> None:
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
        if raw is not None:
            payload["response"] = {"rawResponse": raw}
        if error is not None:
            payload["error"] = error
        self._prompt_log.record(analysis_id, LOG_TYPE, payload)

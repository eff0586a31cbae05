"""
Background analysis run, one per record:

    pending → analyzing(0) → [validation] → analyzing(30) → [analysis]
            → analyzing(70) → [illustration] → completed(100)
    pending → analyzing(0) → [validation rejects] → failed

Only a validation rejection ends in `failed`. Once validation accepts, an
analysis failure swaps in a canned job and an illustration failure drops the
card image; the run still completes.
"""
import asyncio
import logging

from palmjob.core.store import ResultStore
from palmjob.core.tasks import TaskRegistry
from palmjob.models import (
    ERROR_MESSAGES,
    AnalysisStatus,
    Gender,
    ImagePayload,
    JobResult,
    UploadErrorType,
)
from palmjob.services.analysis import PalmAnalyzer, fallback_job
from palmjob.services.illustration import CardIllustrator
from palmjob.services.images import to_data_uri
from palmjob.services.validation import PalmValidator

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 0
PROGRESS_VALIDATED = 30
PROGRESS_ANALYZED = 70
PROGRESS_DONE = 100

CARD_IMAGE_KIND = "card"


class AnalysisOrchestrator:
    def __init__(
        self,
        store: ResultStore,
        validator: PalmValidator,
        analyzer: PalmAnalyzer,
        illustrator: CardIllustrator,
        tasks: TaskRegistry,
        store_card_images: bool = False,
    ) -> None:
        self._store = store
        self._validator = validator
        self._analyzer = analyzer
        self._illustrator = illustrator
        self._tasks = tasks
        self._store_card_images = store_card_images

    def dispatch(
        self,
        analysis_id: str,
        left: ImagePayload,
        right: ImagePayload,
        gender: Gender | None = None,
        base_url: str | None = None,
    ) -> asyncio.Task:
        """Starts the run detached from the calling request; nobody awaits it."""
        return self._tasks.spawn(
            self.run(analysis_id, left, right, gender=gender, base_url=base_url),
            name=f"analysis:{analysis_id}",
        )

    async def run(
        self,
        analysis_id: str,
        left: ImagePayload,
        right: ImagePayload,
        gender: Gender | None = None,
        base_url: str | None = None,
    ) -> None:
        validated = False
        try:
            if await self._store.update(analysis_id, status=AnalysisStatus.analyzing, progress=PROGRESS_STARTED) is None:
                logger.warning("Analysis %s not found or expired; skipping run", analysis_id)
                return

            left_uri, right_uri = await asyncio.gather(
                asyncio.to_thread(to_data_uri, left),
                asyncio.to_thread(to_data_uri, right),
            )

            validation = await self._validator.validate(left_uri, right_uri, analysis_id)
            if not validation.is_valid:
                error_type = validation.error_type or UploadErrorType.UNKNOWN
                logger.info("Analysis %s rejected by validation: %s", analysis_id, error_type.value)
                await self._store.update(
                    analysis_id,
                    status=AnalysisStatus.failed,
                    error=error_type,
                    error_message=ERROR_MESSAGES[error_type],
                )
                return
            validated = True
            await self._store.update(analysis_id, progress=PROGRESS_VALIDATED)

            analysis = await self._analyzer.analyze(left_uri, right_uri, analysis_id)
            if analysis.ok:
                job = analysis.job
            else:
                logger.warning("Using default result for %s due to: %s", analysis_id, analysis.error)
                job = fallback_job()
            await self._store.update(analysis_id, progress=PROGRESS_ANALYZED)

            if analysis.ok:
                job = await self._illustrate(analysis_id, job, gender, base_url)

            await self._store.update(
                analysis_id, status=AnalysisStatus.completed, progress=PROGRESS_DONE, job=job
            )
            logger.info("Analysis %s completed: %s", analysis_id, job.title)
        except Exception as e:
            logger.exception("Process analysis error for %s: %s", analysis_id, e)
            await self._finish_after_error(analysis_id, validated)

    async def _illustrate(
        self, analysis_id: str, job: JobResult, gender: Gender | None, base_url: str | None
    ) -> JobResult:
        illustration = await self._illustrator.generate(job.title, gender)
        if not illustration.ok:
            logger.warning("Card image generation failed for %s: %s", analysis_id, illustration.error)
            return job
        card_url = illustration.image_url
        if self._store_card_images:
            card_url = await self._keep_card_copy(analysis_id, card_url, base_url)
        return job.model_copy(update={"card_image_url": card_url})

    async def _keep_card_copy(self, analysis_id: str, provider_url: str, base_url: str | None) -> str:
        """Saves the card bytes in the store; returns our URL, or the provider URL if saving fails."""
        try:
            data, content_type = await self._illustrator.download(provider_url)
            await self._store.save_image(analysis_id, CARD_IMAGE_KIND, data, content_type)
        except Exception as e:
            logger.warning("Could not keep card image copy for %s: %s", analysis_id, e)
            return provider_url
        return f"{(base_url or '').rstrip('/')}/api/image/{analysis_id}/{CARD_IMAGE_KIND}"

    async def _finish_after_error(self, analysis_id: str, validated: bool) -> None:
        try:
            record = await self._store.get(analysis_id)
            if record is None or record.status.is_terminal:
                return
            if validated:
                await self._store.update(
                    analysis_id, status=AnalysisStatus.completed, progress=PROGRESS_DONE, job=fallback_job()
                )
            else:
                await self._store.update(
                    analysis_id,
                    status=AnalysisStatus.failed,
                    error=UploadErrorType.UNKNOWN,
                    error_message=ERROR_MESSAGES[UploadErrorType.UNKNOWN],
                )
        except Exception as e:
            logger.exception("Could not write terminal state for %s: %s", analysis_id, e)

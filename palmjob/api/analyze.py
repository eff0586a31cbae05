"""Intake, polling and card image endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile

from palmjob.api.deps import get_orchestrator, get_settings, get_store
from palmjob.core.config import Settings
from palmjob.core.ids import new_analysis_id
from palmjob.core.rate_limit import analyze_rate_limit, limiter
from palmjob.core.store import ResultStore
from palmjob.core.urls import resolve_base_url
from palmjob.models import Gender, ImagePayload
from palmjob.schemas.analyze import AnalyzeResponse, ErrorResponse
from palmjob.services.images import VISION_MIME_TYPES, sniff_image_type
from palmjob.services.orchestrator import AnalysisOrchestrator

log = logging.getLogger("palmjob.api")

router = APIRouter(prefix="/api", tags=["analyze"])

HANDS = (("left", "leftImage"), ("right", "rightImage"))
SNIFF_BYTES = 32
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 413, 429, 500)}


def _missing_message(hand: str) -> str:
    return f"Please upload a photo of your {hand} palm."


def _not_image_message(hand: str) -> str:
    return f"The {hand} palm file must be an image."


def _unsupported_format_message(hand: str) -> str:
    return f"The {hand} palm photo is HEIC. Please upload a JPEG, PNG, WEBP or GIF photo."


def _too_large_message(hand: str, max_mb: int) -> str:
    return f"The {hand} palm photo must be {max_mb} MB or smaller."


def _parse_gender(value: object) -> Gender | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail="Gender must be 'male' or 'female'.")
    try:
        return Gender(value.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="Gender must be 'male' or 'female'.")


async def _read_uploads(form, max_bytes: int, max_mb: int) -> dict[str, ImagePayload]:
    """
    Checks in order, first failure wins: both files present, both are images
    (magic bytes) in a format the vision model reads, both within the size ceiling.
    """
    uploads: dict[str, UploadFile] = {}
    for hand, field in HANDS:
        value = form.get(field)
        if not isinstance(value, UploadFile):
            raise HTTPException(status_code=400, detail=_missing_message(hand))
        uploads[hand] = value

    mime_types: dict[str, str] = {}
    for hand, _ in HANDS:
        head = await uploads[hand].read(SNIFF_BYTES)
        await uploads[hand].seek(0)
        mime = sniff_image_type(head)
        if mime is None:
            raise HTTPException(status_code=400, detail=_not_image_message(hand))
        if mime not in VISION_MIME_TYPES:
            raise HTTPException(status_code=400, detail=_unsupported_format_message(hand))
        mime_types[hand] = mime

    payloads: dict[str, ImagePayload] = {}
    for hand, _ in HANDS:
        data = await uploads[hand].read(max_bytes + 1)
        if len(data) > max_bytes:
            raise HTTPException(status_code=413, detail=_too_large_message(hand, max_mb))
        payloads[hand] = ImagePayload(data=data, mime_type=mime_types[hand])
    return payloads


@router.post("/analyze", response_model=AnalyzeResponse, responses=ERROR_RESPONSES)
@limiter.limit(analyze_rate_limit)
async def analyze(
    request: Request,
    store: ResultStore = Depends(get_store),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    app_settings: Settings = Depends(get_settings),
):
    """Multipart form: leftImage, rightImage (required), gender (optional). Returns the id to poll."""
    try:
        form = await request.form()
    except Exception as e:
        log.warning("analyze: form parse error: %s", e)
        raise HTTPException(status_code=400, detail="Upload could not be read. Please try again.")

    payloads = await _read_uploads(form, app_settings.upload_max_bytes, app_settings.upload_max_mb)
    gender = _parse_gender(form.get("gender"))

    analysis_id = new_analysis_id()
    record = await store.create(analysis_id)
    log.info(
        "analyze: id=%s left=%s/%dB right=%s/%dB gender=%s",
        analysis_id,
        payloads["left"].mime_type,
        len(payloads["left"].data),
        payloads["right"].mime_type,
        len(payloads["right"].data),
        gender.value if gender else None,
    )
    # Client polls /api/result/{id}; the run outlives this request
    orchestrator.dispatch(
        analysis_id,
        payloads["left"],
        payloads["right"],
        gender=gender,
        base_url=resolve_base_url(request, app_settings),
    )
    return AnalyzeResponse(id=record.id, status=record.status)


@router.get("/result/{analysis_id}", responses={404: {"model": ErrorResponse}})
async def get_result(analysis_id: str, store: ResultStore = Depends(get_store)):
    """Current record as stored, for pollers."""
    record = await store.get(analysis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Result not found or expired.")
    return JSONResponse(content=record.to_public(), headers={"Cache-Control": "no-store"})


@router.get("/image/{analysis_id}/{kind}", responses={404: {"model": ErrorResponse}})
async def get_image(analysis_id: str, kind: str, store: ResultStore = Depends(get_store)):
    """Durable copy of a generated card image."""
    found = await store.get_image(analysis_id, kind)
    if found is None:
        raise HTTPException(status_code=404, detail="Image not found or expired.")
    data, content_type = found
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "public, max-age=86400"})

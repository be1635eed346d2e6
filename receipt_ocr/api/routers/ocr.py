import asyncio

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile
from loguru import logger
from pydantic import BaseModel

from ..deps import Pipeline, StatusResponse, SuggestResponse, VendorsResponse, get_pipeline
from ...core.config import settings
from ...core.errors import UnsupportedInputError
from ...models.ocr import OcrMode, Provider
from ...services.category import infer_category
from ...services.normalizer import detect_media_kind

router = APIRouter(prefix="/ocr", tags=["ocr"])


class LearnRequest(BaseModel):
    """Request body for /ocr/vendors/learn"""
    vendor: str
    text: str
    token: int | None = None  # Token of the suggestion being confirmed, if any


class RemainingRequest(BaseModel):
    remaining: int


class CategoryRequest(BaseModel):
    text: str = ""
    vendor: str | None = None


@router.get("/status", response_model=StatusResponse)
def status(
    x_session_id: str = Header("default"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Provider availability, this month's cloud OCR quota and the session's last status.

    Plain def: checking the local engine and reading the quota block, so
    FastAPI runs this in its threadpool.
    """
    caps = pipeline.orchestrator.capabilities()
    session = pipeline.sessions.get(x_session_id)
    return StatusResponse(
        cloud_available=caps.cloud_available,
        cloud_reason=caps.cloud_reason,
        local_available=caps.local_available,
        local_reason=caps.local_reason,
        pdf_text_available=caps.pdf_text_available,
        quota=pipeline.quota.status().to_dict(),
        session_status=session.status,
        session_token=session.current_token,
    )


@router.post("/suggest", response_model=SuggestResponse)
async def suggest(
    request: Request,
    file: UploadFile = File(None),
    mode: OcrMode | None = Query(None),
    x_session_id: str = Header("default"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Suggest receipt fields for an uploaded image or PDF.

    Accepts either:
    - multipart/form-data (file upload via form)
    - image/* or application/pdf (raw binary body)

    A newer upload from the same session (X-Session-Id header) supersedes
    this one; a superseded request answers 409. Forced cloud OCR with the
    monthly limit spent answers 429.
    """
    if file:
        content = await file.read()
        content_type = file.content_type
        filename = file.filename or "upload"
    else:
        content = await request.body()
        content_type = request.headers.get("content-type")
        filename = "upload"
    if not content:
        raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")

    try:
        media_kind = detect_media_kind(content_type, filename)
    except UnsupportedInputError as e:
        raise HTTPException(status_code=415, detail=e.reason)

    mode = mode or OcrMode(settings.default_ocr_mode)
    session = pipeline.sessions.get(x_session_id)
    logger.info(
        "Suggestion request received",
        session=x_session_id,
        filename=filename,
        media_kind=media_kind.value,
        mode=mode.value,
        size_bytes=len(content),
    )

    result = await pipeline.orchestrator.submit(session, filename, media_kind, content, mode)
    if result is None:
        raise HTTPException(status_code=409, detail="Superseded by a newer request")

    quota = await asyncio.to_thread(pipeline.quota.status)
    if (
        mode == OcrMode.FORCE_CLOUD
        and result.decision.provider == Provider.NONE
        and not quota.allowed
    ):
        raise HTTPException(status_code=429, detail=result.status)

    return SuggestResponse(
        token=result.token,
        provider=result.decision.provider.value,
        reason=result.decision.reason,
        status=result.status,
        suggestion=result.suggestion,
        category=result.category,
        text=result.text,
        vendor_from_memory=result.vendor_from_memory,
        quota=quota.to_dict(),
    )


@router.get("/vendors", response_model=VendorsResponse)
def list_vendors(pipeline: Pipeline = Depends(get_pipeline)):
    """All learned vendor signatures"""
    return VendorsResponse(vendors=pipeline.memory.entries)


@router.post("/vendors/learn")
def learn_vendor(
    req: LearnRequest,
    x_session_id: str = Header("default"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Record a vendor the user confirmed.

    With a token, the confirmation only counts if that suggestion is still
    the session's current one.
    """
    vendor = req.vendor.strip()
    if not vendor:
        raise HTTPException(status_code=422, detail="Missing vendor.")
    if not req.text.strip():
        raise HTTPException(status_code=422, detail="Missing receipt text.")

    if req.token is not None:
        session = pipeline.sessions.get(x_session_id)
        if not session.is_current(req.token):
            raise HTTPException(status_code=409, detail="Superseded by a newer request")
        entry = pipeline.orchestrator.accept(session, req.token, req.text, vendor)
    else:
        entry = pipeline.memory.learn(req.text, vendor)

    if entry is None:
        raise HTTPException(status_code=500, detail="Failed to save vendor memory.")
    return {"ok": True, "vendor": entry}


@router.post("/quota/remaining")
def set_remaining(req: RemainingRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """Administrative override of this month's remaining cloud OCR calls"""
    state = pipeline.quota.set_remaining(req.remaining)
    return {"ok": True, "quota": state.to_dict()}


@router.post("/category")
async def category(req: CategoryRequest):
    return {"category": infer_category(req.text, req.vendor)}

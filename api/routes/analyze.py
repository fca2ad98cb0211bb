"""
Analysis Proxy Routes — the server boundary that holds the model key.

POST /analyze takes ``{image, lat, lng, radius}`` and answers
``{text}``; every failure answers ``{error}`` with 400, 429 or 500.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_quota, get_vision_model
from api.schemas import AnalyzeRequest, AnalyzeResponse, ErrorResponse, QuotaResponse
from modules.errors import QuotaExceededError, UpstreamError
from modules.forage_proxy import VisionModel, run_forage_analysis
from modules.quota import QuotaCounter

logger = logging.getLogger(__name__)
router = APIRouter()

MISSING_PARAMS_MESSAGE = "Missing or invalid parameters: image, lat and lng are required."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ---- Health ---- #

@router.get("/health")
async def health():
    return {"status": "ok"}


# ---- Proxy ---- #

@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def analyze(
    req: AnalyzeRequest,
    quota: QuotaCounter = Depends(get_quota),
    model: VisionModel = Depends(get_vision_model),
):
    """Forward a captured site image to the vision model under the daily quota."""
    if not req.image:
        return _error(400, MISSING_PARAMS_MESSAGE)

    try:
        text = await run_forage_analysis(
            req.image, req.lat, req.lng, req.radius, quota=quota, model=model,
        )
    except QuotaExceededError as exc:
        return _error(429, exc.message)
    except UpstreamError as exc:
        logger.error("Forage analysis failed for (%.4f, %.4f): %s", req.lat, req.lng, exc.message)
        return _error(500, f"AI analysis failed: {exc.message}")
    except Exception as exc:
        logger.exception("Unexpected error in analysis proxy")
        return _error(500, f"AI analysis failed: {exc}")

    return AnalyzeResponse(text=text)


@router.get("/quota", response_model=QuotaResponse)
async def quota_status(quota: QuotaCounter = Depends(get_quota)):
    """Today's usage of the analysis quota."""
    return QuotaResponse.from_snapshot(quota.snapshot())

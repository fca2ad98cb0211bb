"""
Analysis Session Routes — the results view of the active analysis.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from api.dependencies import get_workspace
from api.schemas import AnalysisStateResponse, ErrorResponse
from modules.forage_analysis import ForageWorkspace, export_filename
from modules.lifecycle import AnalysisStatus

router = APIRouter(prefix="/analysis")


@router.get("", response_model=AnalysisStateResponse)
async def get_analysis(ws: ForageWorkspace = Depends(get_workspace)):
    """Current state of the results view (poll while ``is_loading``)."""
    return AnalysisStateResponse.from_view(ws.controller.view)


@router.delete("", response_model=AnalysisStateResponse)
async def close_analysis(ws: ForageWorkspace = Depends(get_workspace)):
    """Close the results view; a running analysis is cancelled and its result dropped."""
    ws.controller.close()
    return AnalysisStateResponse.from_view(ws.controller.view)


@router.get(
    "/export",
    response_class=PlainTextResponse,
    responses={404: {"model": ErrorResponse}},
)
async def export_analysis(ws: ForageWorkspace = Depends(get_workspace)):
    """Download the raw analysis text of the last successful run."""
    view = ws.controller.view
    if view.status is not AnalysisStatus.SUCCEEDED or view.result is None or view.site is None:
        raise HTTPException(status_code=404, detail="No analysis result to export.")
    filename = export_filename(view.site)
    return PlainTextResponse(
        view.result.raw_text,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

"""
Site Routes — plan up to three hive sites and start their analysis.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_workspace
from api.schemas import (
    AnalysisStateResponse,
    Coordinates,
    ErrorResponse,
    RadiusUpdateRequest,
    SiteCreateRequest,
    SiteListResponse,
    SiteOut,
)
from modules.forage_analysis import ForageWorkspace
from modules.lifecycle import AnalysisStatus
from modules.sites import FLIGHT_RADIUS_OPTIONS, SiteLimitError, SiteNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sites")

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _site_list(ws: ForageWorkspace) -> SiteListResponse:
    center = ws.sites.search_center
    return SiteListResponse(
        sites=[SiteOut.from_site(s) for s in ws.sites.list()],
        limit=ws.sites.max_sites,
        radius_options=list(FLIGHT_RADIUS_OPTIONS),
        selected_id=ws.sites.selected_id,
        search_center=Coordinates(lat=center[0], lng=center[1]) if center else None,
    )


@router.get("", response_model=SiteListResponse)
async def list_sites(ws: ForageWorkspace = Depends(get_workspace)):
    return _site_list(ws)


@router.post(
    "",
    response_model=SiteOut,
    status_code=201,
    responses={409: {"model": ErrorResponse}},
)
async def create_site(req: SiteCreateRequest, ws: ForageWorkspace = Depends(get_workspace)):
    """Place a new site with the default flight radius and select it."""
    try:
        site = ws.sites.add(req.lat, req.lng)
    except SiteLimitError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SiteOut.from_site(site)


@router.patch(
    "/{site_id}",
    response_model=SiteOut,
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def update_site(
    site_id: str,
    req: RadiusUpdateRequest,
    ws: ForageWorkspace = Depends(get_workspace),
):
    """Change a site's flight radius (one of the fixed options)."""
    try:
        site = ws.sites.update_radius(site_id, req.radius)
    except SiteNotFoundError:
        raise HTTPException(status_code=404, detail="Site not found.")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SiteOut.from_site(site)


@router.delete("/{site_id}", status_code=204, responses=_NOT_FOUND)
async def delete_site(site_id: str, ws: ForageWorkspace = Depends(get_workspace)):
    try:
        ws.sites.delete(site_id)
    except SiteNotFoundError:
        raise HTTPException(status_code=404, detail="Site not found.")
    return Response(status_code=204)


@router.post("/{site_id}/select", response_model=SiteListResponse, responses=_NOT_FOUND)
async def select_site(site_id: str, ws: ForageWorkspace = Depends(get_workspace)):
    try:
        ws.sites.select(site_id)
    except SiteNotFoundError:
        raise HTTPException(status_code=404, detail="Site not found.")
    return _site_list(ws)


@router.post(
    "/{site_id}/analysis",
    response_model=AnalysisStateResponse,
    status_code=202,
    responses=_NOT_FOUND,
)
async def start_analysis(site_id: str, ws: ForageWorkspace = Depends(get_workspace)):
    """Start the forage analysis for a site, superseding any running one.

    The work continues in the background; poll ``GET /analysis``.
    """
    ws.controller.begin(site_id)
    view = ws.controller.view
    if view.status is AnalysisStatus.FAILED and view.site is None:
        return JSONResponse(status_code=404, content={"error": view.error})
    return AnalysisStateResponse.from_view(view)

"""
Search Routes — forward geocoding to recentre the map.
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_workspace
from api.schemas import ErrorResponse, SearchResponse, SearchResult
from modules.forage_analysis import ForageWorkspace
from modules.geocoding import search_address

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/search",
    response_model=SearchResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def search(
    q: str = Query(..., min_length=1, description="Address or place name"),
    ws: ForageWorkspace = Depends(get_workspace),
):
    """Look up *q* and centre the map on the best match (clears the selection)."""
    try:
        results = await search_address(q)
    except httpx.HTTPError as exc:
        logger.error("Address search failed for '%s': %s", q, exc)
        raise HTTPException(status_code=502, detail="Address search failed.")

    if not results:
        raise HTTPException(status_code=404, detail="No results found.")

    best = results[0]
    ws.sites.center_on(best["lat"], best["lng"])
    return SearchResponse(query=q, results=[SearchResult(**r) for r in results])

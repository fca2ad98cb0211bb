"""
Address search via the Nominatim HTTP API (no extra dependency).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NOMINATIM_SEARCH = "https://nominatim.openstreetmap.org/search"


async def search_address(
    query: str,
    limit: int = 5,
    client: httpx.AsyncClient | None = None,
) -> list[dict[str, Any]]:
    """Forward-geocode *query*; returns ``[{"display_name", "lat", "lng"}, ...]``.

    Raises:
        httpx.HTTPError: Nominatim unreachable or returned an error status.
    """
    params = {"q": query, "format": "json", "limit": limit}
    headers = {"User-Agent": "Api-Scout/0.1"}
    if client is not None:
        resp = await client.get(NOMINATIM_SEARCH, params=params, headers=headers)
    else:
        async with httpx.AsyncClient(timeout=10) as own:
            resp = await own.get(NOMINATIM_SEARCH, params=params, headers=headers)
    resp.raise_for_status()

    results = []
    for r in resp.json():
        try:
            results.append({
                "display_name": r.get("display_name", ""),
                "lat": float(r["lat"]),
                "lng": float(r["lon"]),
            })
        except (KeyError, TypeError, ValueError):
            continue
    logger.info("Address search '%s' → %d results", query, len(results))
    return results

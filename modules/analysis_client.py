"""
Analysis transports — how the lifecycle controller reaches the proxy.

``ProxyAnalysisClient`` posts to the ``/api/analyze`` boundary over HTTP
(the deployment where capture and proxy run in different processes);
``LocalAnalysisTransport`` calls the proxy core in-process with the same
quota and error semantics.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from modules.errors import AnalysisTimeoutError, QuotaExceededError, UpstreamError
from modules.forage_proxy import VisionModel, run_forage_analysis
from modules.quota import QuotaCounter

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = "The analysis service could not be reached."


class AnalysisTransport(Protocol):
    async def analyze(self, image_b64: str, lat: float, lng: float, radius: int) -> str: ...


class ProxyAnalysisClient:
    """HTTP client for ``POST {url}`` with ``{image, lat, lng, radius}``."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.url = url
        self._client = client
        self.timeout = timeout

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, json=payload)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.url, json=payload)

    async def analyze(self, image_b64: str, lat: float, lng: float, radius: int) -> str:
        payload = {"image": image_b64, "lat": lat, "lng": lng, "radius": radius}
        try:
            resp = await self._post(payload)
        except httpx.TimeoutException as exc:
            raise AnalysisTimeoutError(
                "The analysis took too long and was aborted. Please try again."
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Analysis proxy unreachable at %s: %s", self.url, exc)
            raise UpstreamError(UNREACHABLE_MESSAGE) from exc

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error")
            except (ValueError, AttributeError):
                message = None
            message = message or f"Server error: {resp.status_code}"
            if resp.status_code == 429:
                raise QuotaExceededError(message)
            raise UpstreamError(message)

        try:
            text = resp.json()["text"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamError("The analysis service sent an unreadable answer.") from exc
        if not isinstance(text, str):
            raise UpstreamError("The analysis service sent an unreadable answer.")
        return text


class LocalAnalysisTransport:
    """In-process transport sharing the proxy's quota and model."""

    def __init__(self, quota: QuotaCounter, model: VisionModel) -> None:
        self.quota = quota
        self.model = model

    async def analyze(self, image_b64: str, lat: float, lng: float, radius: int) -> str:
        return await run_forage_analysis(
            image_b64, lat, lng, radius, quota=self.quota, model=self.model,
        )

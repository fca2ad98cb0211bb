"""
Analysis Proxy core — quota-guarded forwarding to the vision model.

The HTTP route in ``api/routes/analyze.py`` validates the request and
maps errors to status codes; this module owns the ordering rule: check
the quota, call the model, and count the call only once it succeeded.
"""

from __future__ import annotations

import logging
from typing import Protocol

from modules.quota import QuotaCounter

logger = logging.getLogger(__name__)


class VisionModel(Protocol):
    async def generate(self, image_b64: str, lat: float, lng: float, radius: int) -> str: ...


async def run_forage_analysis(
    image_b64: str,
    lat: float,
    lng: float,
    radius: int,
    *,
    quota: QuotaCounter,
    model: VisionModel,
) -> str:
    """Forward one site image to *model* under the daily *quota*.

    Raises:
        QuotaExceededError: Today's ceiling is already reached.
        UpstreamError: The model call failed; the quota is left untouched.
    """
    quota.check()
    text = await model.generate(image_b64, lat, lng, radius)
    quota.record_success()
    return text

"""
Viewport Capture — rasterise a site's foraging circle from the map surface.

Steps for one capture:
  1. Great-circle bounding box of the site's radius circle.
  2. Fit the surface to that box and wait a fixed grace period so tiles
     can arrive (a latency/completeness trade-off, not a guarantee).
  3. Project the box's NW and SE corners to container pixels.
  4. Hide the site's radius overlay, restoring it no matter what.
  5. Rasterise exactly that pixel rectangle and encode a small JPEG.
"""

from __future__ import annotations

import base64
import io
import logging
import math
import os
from typing import Callable

from PIL import Image

from modules.cancellation import CancellationToken
from modules.errors import NotReadyError
from modules.geo import LatLng, LatLngBounds, circle_bounds
from modules.map_surface import MapSurface
from modules.sites import Site

logger = logging.getLogger(__name__)

CAPTURE_SETTLE_SECONDS = float(os.getenv("CAPTURE_SETTLE_SECONDS", "1.5"))
JPEG_QUALITY = 80

NOT_READY_MESSAGE = "Map or site is not ready for the analysis."


def encode_jpeg(image: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    buf = io.BytesIO()
    image.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def pixel_box(surface: MapSurface, bounds: LatLngBounds) -> tuple[int, int, int, int]:
    """Container-pixel rectangle (left, top, right, bottom) covering *bounds*."""
    x0, y0 = surface.latlng_to_container_point(bounds.north_west)
    x1, y1 = surface.latlng_to_container_point(bounds.south_east)
    width, height = surface.size
    left = max(0, math.floor(x0))
    top = max(0, math.floor(y0))
    right = min(width, math.ceil(x1))
    bottom = min(height, math.ceil(y1))
    return left, top, right, bottom


class ViewportCapture:
    """Capture operation keyed by site id.

    Concurrent captures for different sites run independently; a second
    capture for a site whose capture is still outstanding is rejected.
    """

    def __init__(
        self,
        surface: MapSurface | None,
        site_lookup: Callable[[str], Site | None],
        settle_seconds: float = CAPTURE_SETTLE_SECONDS,
        quality: int = JPEG_QUALITY,
    ) -> None:
        self.surface = surface
        self._lookup = site_lookup
        self.settle_seconds = settle_seconds
        self.quality = quality
        self._in_flight: set[str] = set()

    async def capture(
        self,
        site_id: str,
        token: CancellationToken | None = None,
        *,
        snapshot: Site | None = None,
    ) -> bytes:
        """Return JPEG bytes of the area around *site_id*.

        *snapshot* pins the position and radius to capture; without it the
        site is looked up by id.

        Raises:
            NotReadyError: No surface, unknown site, or a capture for the
                same site is already running. Raised before anything on
                the surface is touched.
            AnalysisCancelledError: *token* fired during the capture.
        """
        surface = self.surface
        site = snapshot if snapshot is not None else self._lookup(site_id)
        if surface is None or site is None:
            raise NotReadyError(NOT_READY_MESSAGE)
        if site_id in self._in_flight:
            raise NotReadyError("A capture for this site is already running.")

        token = token or CancellationToken()
        self._in_flight.add(site_id)
        try:
            bounds = circle_bounds(LatLng(site.lat, site.lng), site.radius)
            surface.fit_bounds(bounds)
            await token.sleep(self.settle_seconds)

            box = pixel_box(surface, bounds)
            if box[2] <= box[0] or box[3] <= box[1]:
                raise NotReadyError("Capture region is outside the visible map.")
            logger.info(
                "Capturing site %s: radius=%dm box=%s", site.id, site.radius, box,
            )

            surface.hide_overlay(site.id)
            try:
                image = await token.run(surface.rasterize(box))
            finally:
                surface.show_overlay(site.id)

            token.raise_if_cancelled()
            return encode_jpeg(image, self.quality)
        finally:
            self._in_flight.discard(site_id)

    async def capture_base64(
        self,
        site_id: str,
        token: CancellationToken | None = None,
        *,
        snapshot: Site | None = None,
    ) -> str:
        data = await self.capture(site_id, token, snapshot=snapshot)
        return base64.b64encode(data).decode("ascii")

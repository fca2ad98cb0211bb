"""Fakes shared by the capture, lifecycle and API tests."""

from __future__ import annotations

import asyncio
import io

from PIL import Image

from modules.map_surface import FIT_PADDING


class FakeSurface:
    """Flat 800x600 surface: one degree of lat/lng maps to 1000 pixels."""

    def __init__(self, width: int = 800, height: int = 600, fail: bool = False):
        self.width = width
        self.height = height
        self.fail = fail
        self.calls: list[tuple] = []
        self.hidden: set[str] = set()
        self.hidden_during_rasterize: set[str] | None = None
        self._center = (0.0, 0.0)

    @property
    def size(self):
        return self.width, self.height

    def fit_bounds(self, bounds, padding=FIT_PADDING):
        self.calls.append(("fit_bounds", bounds))
        self._center = ((bounds.north + bounds.south) / 2, (bounds.west + bounds.east) / 2)

    def latlng_to_container_point(self, point):
        lat0, lng0 = self._center
        return (
            self.width / 2 + (point.lng - lng0) * 1000,
            self.height / 2 - (point.lat - lat0) * 1000,
        )

    def hide_overlay(self, site_id):
        self.calls.append(("hide", site_id))
        self.hidden.add(site_id)

    def show_overlay(self, site_id):
        self.calls.append(("show", site_id))
        self.hidden.discard(site_id)

    async def rasterize(self, box):
        self.calls.append(("rasterize", box))
        self.hidden_during_rasterize = set(self.hidden)
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("canvas is tainted")
        left, top, right, bottom = box
        return Image.new("RGB", (right - left, bottom - top), (40, 120, 40))


class FakeTransport:
    """Analysis transport whose replies are released by the test."""

    def __init__(self, text: str = "**Bewertung:** 8/10"):
        self.text = text
        self.calls: list[tuple] = []
        self.gates: list[asyncio.Event] = []
        self.block = False
        self.error: Exception | None = None
        self.cancelled = 0

    async def analyze(self, image_b64, lat, lng, radius):
        self.calls.append((image_b64, lat, lng, radius))
        if self.block:
            gate = asyncio.Event()
            self.gates.append(gate)
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if self.error is not None:
            raise self.error
        return f"{self.text}\n{lat},{lng}"


def png_bytes(color=(0, 128, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (256, 256), color).save(buf, format="PNG")
    return buf.getvalue()

"""
Forage Analysis — wiring of the per-process workspace, plus a CLI.

One ``ForageWorkspace`` holds the ephemeral application state (sites),
the headless map surface that draws them, the capture bound to that
surface, the proxy's quota and model, and the lifecycle controller that
ties capture and proxy together.

Usage:
    python -m modules.forage_analysis 52.52 13.405 --radius 3000
    python -m modules.forage_analysis 52.52 13.405 --json --save-image area.jpg
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from dataclasses import dataclass

from modules.analysis_client import (
    AnalysisTransport,
    LocalAnalysisTransport,
    ProxyAnalysisClient,
)
from modules.forage_proxy import VisionModel
from modules.gemini_vision import GeminiVisionModel
from modules.lifecycle import ANALYSIS_TIMEOUT_SECONDS, AnalysisController
from modules.map_surface import TileMapSurface
from modules.quota import DailyQuota
from modules.sites import Site, SiteStore
from modules.viewport_capture import CAPTURE_SETTLE_SECONDS, ViewportCapture

logger = logging.getLogger(__name__)

ANALYSIS_PROXY_URL = os.getenv("ANALYSIS_PROXY_URL")


@dataclass
class ForageWorkspace:
    sites: SiteStore
    surface: TileMapSurface
    capture: ViewportCapture
    quota: DailyQuota
    model: VisionModel
    controller: AnalysisController


def build_workspace(
    proxy_url: str | None = ANALYSIS_PROXY_URL,
    *,
    model: VisionModel | None = None,
    quota: DailyQuota | None = None,
    transport: AnalysisTransport | None = None,
    surface: TileMapSurface | None = None,
    settle_seconds: float = CAPTURE_SETTLE_SECONDS,
    timeout: float = ANALYSIS_TIMEOUT_SECONDS,
) -> ForageWorkspace:
    """Assemble a workspace.

    With *proxy_url* the controller talks to a remote ``/api/analyze``;
    without it the proxy core runs in-process against *quota* and *model*.
    """
    sites = SiteStore()
    surface = surface or TileMapSurface(sites.list)
    capture = ViewportCapture(surface, sites.get, settle_seconds=settle_seconds)
    quota = quota or DailyQuota()
    model = model or GeminiVisionModel()

    if transport is None:
        if proxy_url:
            transport = ProxyAnalysisClient(proxy_url, timeout=timeout + 5)
        else:
            transport = LocalAnalysisTransport(quota, model)
    logger.info(
        "Analysis transport: %s",
        proxy_url if isinstance(transport, ProxyAnalysisClient) else type(transport).__name__,
    )

    controller = AnalysisController(capture, transport, sites.get, timeout=timeout)
    return ForageWorkspace(sites, surface, capture, quota, model, controller)


def export_filename(site: Site) -> str:
    """Download name for a saved analysis, e.g. ``Analyse-Bienenstock-52.52_13.40.txt``."""
    return f"Analyse-Bienenstock-{site.lat:.2f}_{site.lng:.2f}.txt"


class _RecordingTransport:
    """Keeps the last image sent so the CLI can write it to disk."""

    def __init__(self, inner: AnalysisTransport) -> None:
        self.inner = inner
        self.last_image: str | None = None

    async def analyze(self, image_b64: str, lat: float, lng: float, radius: int) -> str:
        self.last_image = image_b64
        return await self.inner.analyze(image_b64, lat, lng, radius)


# ── CLI entry point ──────────────────────────────────────────────── #

if __name__ == "__main__":
    import argparse
    import json
    import sys

    from dotenv import load_dotenv

    from modules.lifecycle import AnalysisStatus
    from modules.sites import FLIGHT_RADIUS_OPTIONS

    load_dotenv()

    parser = argparse.ArgumentParser(
        description="AI forage assessment for a hive site",
    )
    parser.add_argument("lat", type=float, help="Latitude")
    parser.add_argument("lng", type=float, help="Longitude")
    parser.add_argument(
        "--radius", type=int, default=2000, choices=FLIGHT_RADIUS_OPTIONS,
        help="Flight radius in metres",
    )
    parser.add_argument("--proxy-url", default=ANALYSIS_PROXY_URL, help="Remote /api/analyze URL")
    parser.add_argument("--save-image", metavar="PATH", help="Write the captured JPEG here")
    parser.add_argument("--json", action="store_true", help="Output raw JSON")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    async def _main() -> int:
        ws = build_workspace(args.proxy_url)
        recorder = _RecordingTransport(ws.controller.transport)
        ws.controller.transport = recorder

        site = ws.sites.add(args.lat, args.lng)
        ws.sites.update_radius(site.id, args.radius)
        try:
            view = await ws.controller.analyze(site.id)
        finally:
            await ws.surface.aclose()

        if args.save_image and recorder.last_image:
            with open(args.save_image, "wb") as f:
                f.write(base64.b64decode(recorder.last_image))

        if view.status is not AnalysisStatus.SUCCEEDED or view.result is None:
            print(f"Analysis failed: {view.error}", file=sys.stderr)
            return 1

        result = view.result
        if args.json:
            print(json.dumps({
                "lat": args.lat,
                "lng": args.lng,
                "radius": args.radius,
                "sources": result.sources,
                "risks": result.risks,
                "summary": result.summary,
                "score": result.score.value if result.score else None,
                "score_label": result.score.label if result.score else None,
                "text": result.raw_text,
            }, indent=2, ensure_ascii=False))
            return 0

        if result.fallback or not (result.sources or result.risks or result.score):
            print(result.raw_text)
            return 0

        print(f"\n🐝 Forage assessment for ({args.lat}, {args.lng}), radius {args.radius / 1000:g} km\n")
        print("Forage sources:")
        for item in result.sources:
            print(f"  • {item}")
        print("\nRisks:")
        for item in result.risks:
            print(f"  • {item}")
        if result.summary:
            print(f"\nSummary:\n  {result.summary}")
        if result.score:
            print(f"\nScore: {result.score.display}/{result.score.maximum} ({result.score.label})")
        return 0

    sys.exit(asyncio.run(_main()))

"""
Map Surface — headless slippy-map viewport over Esri World Imagery.

Plays the role the interactive map plays in the browser: it has a fixed
pixel size, a centre and an integer zoom, loads the visible satellite
tiles asynchronously, draws one radius circle per site on top, and can
rasterise any pixel rectangle of what it currently shows.

Tiles that have not arrived by the time of rasterisation are left grey;
callers that need a complete picture give the surface time to settle.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
import os
from collections import OrderedDict
from typing import Callable, Iterable, Protocol

import httpx
from PIL import Image, ImageDraw

from modules.geo import (
    TILE_SIZE,
    LatLng,
    LatLngBounds,
    destination,
    project,
    unproject,
)
from modules.sites import Site

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAP_TILE_URL = os.getenv(
    "MAP_TILE_URL",
    "https://server.arcgisonline.com/ArcGIS/rest/services/"
    "World_Imagery/MapServer/tile/{z}/{y}/{x}",
)
MAP_WIDTH = int(os.getenv("MAP_WIDTH", "800"))
MAP_HEIGHT = int(os.getenv("MAP_HEIGHT", "600"))
MAP_MAX_ZOOM = 18
MAP_TILE_CACHE_SIZE = int(os.getenv("MAP_TILE_CACHE_SIZE", "256"))
MAP_INITIAL_CENTER = LatLng(51.1657, 10.4515)
MAP_INITIAL_ZOOM = 6
FIT_PADDING = (10, 10)

_BACKGROUND = (221, 221, 221, 255)
_CIRCLE_OUTLINE = (59, 130, 246, 255)
_CIRCLE_FILL = (147, 197, 253, 77)


class MapSurface(Protocol):
    """What viewport capture needs from a rendered map."""

    @property
    def size(self) -> tuple[int, int]: ...

    def fit_bounds(self, bounds: LatLngBounds, padding: tuple[int, int] = FIT_PADDING) -> None: ...

    def latlng_to_container_point(self, point: LatLng) -> tuple[float, float]: ...

    def hide_overlay(self, site_id: str) -> None: ...

    def show_overlay(self, site_id: str) -> None: ...

    async def rasterize(self, box: tuple[int, int, int, int]) -> Image.Image: ...


class TileMapSurface:
    """Web-Mercator viewport backed by XYZ raster tiles.

    Args:
        sites: Callable returning the current sites; each gets a radius
            circle unless its overlay is hidden.
        width: Viewport width in pixels.
        height: Viewport height in pixels.
        tile_url: XYZ template with ``{z}``, ``{x}`` and ``{y}``.
        cache_size: Decoded tiles kept in memory, least recently used dropped first.
        client: Optional shared ``httpx.AsyncClient`` for tile requests.
    """

    def __init__(
        self,
        sites: Callable[[], Iterable[Site]],
        width: int = MAP_WIDTH,
        height: int = MAP_HEIGHT,
        tile_url: str = MAP_TILE_URL,
        max_zoom: int = MAP_MAX_ZOOM,
        client: httpx.AsyncClient | None = None,
        cache_size: int = MAP_TILE_CACHE_SIZE,
    ) -> None:
        self._sites = sites
        self.width = width
        self.height = height
        self.tile_url = tile_url
        self.max_zoom = max_zoom
        self.center = MAP_INITIAL_CENTER
        self.zoom = MAP_INITIAL_ZOOM
        self._client = client
        self.cache_size = cache_size
        self._tiles: OrderedDict[tuple[int, int, int], Image.Image] = OrderedDict()
        self._hidden: set[str] = set()
        self._loading: asyncio.Task | None = None

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    # ── View ────────────────────────────────────────────────────── #

    def _pixel_origin(self) -> tuple[float, float]:
        cx, cy = project(self.center, self.zoom)
        return cx - self.width / 2.0, cy - self.height / 2.0

    def set_view(self, center: LatLng, zoom: int) -> None:
        self.center = center
        self.zoom = max(0, min(self.max_zoom, zoom))

    def fit_bounds(self, bounds: LatLngBounds, padding: tuple[int, int] = FIT_PADDING) -> None:
        """Centre on *bounds* at the highest zoom that shows all of it.

        Starts loading the newly visible tiles in the background.
        """
        avail_w = self.width - 2 * padding[0]
        avail_h = self.height - 2 * padding[1]

        zoom = 0
        for z in range(self.max_zoom, -1, -1):
            x0, y0 = project(bounds.north_west, z)
            x1, y1 = project(bounds.south_east, z)
            if (x1 - x0) <= avail_w and (y1 - y0) <= avail_h:
                zoom = z
                break

        x0, y0 = project(bounds.north_west, zoom)
        x1, y1 = project(bounds.south_east, zoom)
        self.set_view(unproject((x0 + x1) / 2.0, (y0 + y1) / 2.0, zoom), zoom)
        logger.info(
            "Map fitted to (%.5f, %.5f) at zoom %d",
            self.center.lat, self.center.lng, self.zoom,
        )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._loading is not None and not self._loading.done():
            self._loading.cancel()
        self._loading = loop.create_task(self.load_tiles())

    def latlng_to_container_point(self, point: LatLng) -> tuple[float, float]:
        px, py = project(point, self.zoom)
        ox, oy = self._pixel_origin()
        return px - ox, py - oy

    # ── Overlays ────────────────────────────────────────────────── #

    def hide_overlay(self, site_id: str) -> None:
        self._hidden.add(site_id)

    def show_overlay(self, site_id: str) -> None:
        self._hidden.discard(site_id)

    def is_overlay_hidden(self, site_id: str) -> bool:
        return site_id in self._hidden

    # ── Tiles ───────────────────────────────────────────────────── #

    def visible_tiles(self) -> list[tuple[int, int, int]]:
        """(z, x, y) of every tile intersecting the viewport (x unwrapped)."""
        ox, oy = self._pixel_origin()
        n = 2 ** self.zoom
        x_start = math.floor(ox / TILE_SIZE)
        x_end = math.floor((ox + self.width - 1) / TILE_SIZE)
        y_start = max(0, math.floor(oy / TILE_SIZE))
        y_end = min(n - 1, math.floor((oy + self.height - 1) / TILE_SIZE))
        return [
            (self.zoom, tx, ty)
            for ty in range(y_start, y_end + 1)
            for tx in range(x_start, x_end + 1)
        ]

    def _tile_url(self, z: int, x: int, y: int) -> str:
        return self.tile_url.format(z=z, x=x % (2 ** z), y=y)

    async def _fetch_tile(self, client: httpx.AsyncClient, key: tuple[int, int, int]) -> None:
        z, x, y = key
        url = self._tile_url(z, x, y)
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            tile = Image.open(io.BytesIO(resp.content)).convert("RGBA")
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("Tile %s failed to load: %s", url, exc)
            return
        self._remember(key, tile)

    def _remember(self, key: tuple[int, int, int], tile: Image.Image) -> None:
        self._tiles[key] = tile
        self._tiles.move_to_end(key)
        while len(self._tiles) > self.cache_size:
            self._tiles.popitem(last=False)

    @property
    def cached_tile_count(self) -> int:
        return len(self._tiles)

    async def load_tiles(self) -> int:
        """Fetch every visible tile not yet cached. Returns how many were requested."""
        missing = []
        for key in self.visible_tiles():
            if key in self._tiles:
                self._tiles.move_to_end(key)
            else:
                missing.append(key)
        if not missing:
            return 0

        if self._client is not None:
            await asyncio.gather(*(self._fetch_tile(self._client, k) for k in missing))
        else:
            async with httpx.AsyncClient(
                timeout=10, headers={"User-Agent": "Api-Scout/0.1"},
            ) as client:
                await asyncio.gather(*(self._fetch_tile(client, k) for k in missing))
        logger.info(
            "Loaded %d tiles at zoom %d (%d cached)", len(missing), self.zoom, self.cached_tile_count,
        )
        return len(missing)

    # ── Rendering ───────────────────────────────────────────────── #

    def render(self) -> Image.Image:
        """Composite the currently loaded tiles and visible overlays."""
        canvas = Image.new("RGBA", (self.width, self.height), _BACKGROUND)
        ox, oy = self._pixel_origin()
        for key in self.visible_tiles():
            tile = self._tiles.get(key)
            if tile is None:
                continue
            _, tx, ty = key
            canvas.paste(tile, (round(tx * TILE_SIZE - ox), round(ty * TILE_SIZE - oy)))

        overlay = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        for site in self._sites():
            if site.id in self._hidden:
                continue
            centre = LatLng(site.lat, site.lng)
            cx, cy = self.latlng_to_container_point(centre)
            _, ny = self.latlng_to_container_point(destination(centre, 0.0, site.radius))
            r = abs(cy - ny)
            draw.ellipse(
                [cx - r, cy - r, cx + r, cy + r],
                fill=_CIRCLE_FILL, outline=_CIRCLE_OUTLINE, width=2,
            )
        return Image.alpha_composite(canvas, overlay)

    async def rasterize(self, box: tuple[int, int, int, int]) -> Image.Image:
        """Render the surface and crop to *box* = (left, top, right, bottom)."""
        image = self.render()
        await asyncio.sleep(0)
        return image.crop(box)

    async def aclose(self) -> None:
        if self._loading is not None and not self._loading.done():
            self._loading.cancel()
        if self._client is not None:
            await self._client.aclose()

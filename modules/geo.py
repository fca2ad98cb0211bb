"""
Geo helpers — great-circle geometry and Web-Mercator projection.

Used by the viewport capture to turn a site's foraging circle into a
bounding box, and by the tile surface to place that box on screen.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6371000.0
TILE_SIZE = 256
MAX_MERCATOR_LAT = 85.0511287798


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class LatLngBounds:
    south: float
    west: float
    north: float
    east: float

    @property
    def north_west(self) -> LatLng:
        return LatLng(self.north, self.west)

    @property
    def south_east(self) -> LatLng:
        return LatLng(self.south, self.east)


# ------------------------------------------------------------------ #
#  Great-circle geometry                                             #
# ------------------------------------------------------------------ #

def destination(origin: LatLng, bearing_deg: float, distance_m: float) -> LatLng:
    """Point reached from *origin* after *distance_m* along *bearing_deg*."""
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.lat)
    lmb1 = math.radians(origin.lng)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lmb2 = lmb1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return LatLng(math.degrees(phi2), math.degrees(lmb2))


def circle_bounds(center: LatLng, radius_m: float) -> LatLngBounds:
    """Smallest lat/lng box containing the great-circle disc around *center*.

    The latitude extent is the meridian offset; the longitude extent uses
    the tangent meridians (``asin(sin δ / cos φ)``), which lie north of the
    centre's parallel on the northern hemisphere. Longitudes are left
    unwrapped so the box stays contiguous across the antimeridian.
    If the disc covers a pole the box spans all longitudes.
    """
    if radius_m <= 0:
        raise ValueError("radius_m must be positive")

    delta = radius_m / EARTH_RADIUS_M
    phi = math.radians(center.lat)
    south = math.degrees(phi - delta)
    north = math.degrees(phi + delta)

    if north >= 90.0 or south <= -90.0:
        return LatLngBounds(max(south, -90.0), -180.0, min(north, 90.0), 180.0)

    ratio = math.sin(delta) / math.cos(phi)
    if ratio >= 1.0:
        return LatLngBounds(south, -180.0, north, 180.0)

    dlmb = math.degrees(math.asin(ratio))
    return LatLngBounds(south, center.lng - dlmb, north, center.lng + dlmb)


# ------------------------------------------------------------------ #
#  Web Mercator (EPSG:3857) pixel projection                         #
# ------------------------------------------------------------------ #

def world_size(zoom: float) -> float:
    return TILE_SIZE * (2.0 ** zoom)


def project(point: LatLng, zoom: float) -> tuple[float, float]:
    """Geographic point → global pixel coordinates at *zoom*."""
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, point.lat))
    scale = world_size(zoom)
    x = (point.lng + 180.0) / 360.0 * scale
    y = (1.0 - math.asinh(math.tan(math.radians(lat))) / math.pi) / 2.0 * scale
    return x, y


def unproject(x: float, y: float, zoom: float) -> LatLng:
    """Global pixel coordinates at *zoom* → geographic point."""
    scale = world_size(zoom)
    lng = x / scale * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / scale))))
    return LatLng(lat, lng)

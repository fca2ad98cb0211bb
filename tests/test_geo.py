import math
import unittest

from modules.geo import (
    EARTH_RADIUS_M,
    TILE_SIZE,
    LatLng,
    circle_bounds,
    destination,
    project,
    unproject,
)


def haversine_m(a: LatLng, b: LatLng) -> float:
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = phi2 - phi1
    dlmb = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


class TestCircleBounds(unittest.TestCase):
    def _assert_covers_circle(self, center: LatLng, radius: float):
        bounds = circle_bounds(center, radius)
        for bearing in range(0, 360, 5):
            p = destination(center, bearing, radius)
            self.assertTrue(
                bounds.south - 1e-9 <= p.lat <= bounds.north + 1e-9
                and bounds.west - 1e-9 <= p.lng <= bounds.east + 1e-9,
                f"bearing {bearing}: {p} not in {bounds}",
            )
        return bounds

    def test_contains_every_circle_point(self):
        for lat in (0.0, 47.3, 52.52, -33.9, 70.0):
            for radius in (1000, 2000, 3000):
                self._assert_covers_circle(LatLng(lat, 13.4), radius)

    def test_corners_are_farther_than_radius(self):
        center = LatLng(52.52, 13.405)
        bounds = circle_bounds(center, 2000)
        corners = [
            LatLng(bounds.north, bounds.west),
            LatLng(bounds.north, bounds.east),
            LatLng(bounds.south, bounds.east),
            LatLng(bounds.south, bounds.west),
        ]
        for corner in corners:
            self.assertGreaterEqual(haversine_m(center, corner), 2000)

    def test_latitude_extent_is_meridian_offset(self):
        center = LatLng(10.0, 20.0)
        bounds = circle_bounds(center, 3000)
        delta = math.degrees(3000 / 6371000.0)
        self.assertAlmostEqual(bounds.north, 10.0 + delta, places=9)
        self.assertAlmostEqual(bounds.south, 10.0 - delta, places=9)

    def test_longitude_widens_with_latitude(self):
        low = circle_bounds(LatLng(0.0, 0.0), 2000)
        high = circle_bounds(LatLng(60.0, 0.0), 2000)
        self.assertGreater(high.east - high.west, low.east - low.west)

    def test_polar_circle_spans_all_longitudes(self):
        bounds = circle_bounds(LatLng(89.99, 0.0), 3000)
        self.assertEqual((bounds.west, bounds.east), (-180.0, 180.0))
        self.assertEqual(bounds.north, 90.0)

    def test_rejects_non_positive_radius(self):
        with self.assertRaises(ValueError):
            circle_bounds(LatLng(0, 0), 0)


class TestProjection(unittest.TestCase):
    def test_project_unproject_round_trip(self):
        p = LatLng(48.137, 11.575)
        x, y = project(p, 14)
        back = unproject(x, y, 14)
        self.assertAlmostEqual(back.lat, p.lat, places=6)
        self.assertAlmostEqual(back.lng, p.lng, places=6)

    def test_origin_is_world_centre(self):
        self.assertEqual(project(LatLng(0, 0), 0), (128.0, 128.0))

    def test_tile_of_berlin(self):
        x, y = project(LatLng(52.52, 13.405), 10)
        self.assertEqual((int(x // TILE_SIZE), int(y // TILE_SIZE)), (550, 335))


if __name__ == "__main__":
    unittest.main()

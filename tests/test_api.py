import time
import unittest
from unittest import mock

from fastapi.testclient import TestClient

from api.dependencies import get_workspace
from app import app
from modules.errors import UpstreamError
from modules.forage_analysis import build_workspace
from modules.quota import QUOTA_EXCEEDED_MESSAGE, DailyQuota
from modules.viewport_capture import NOT_READY_MESSAGE
from tests.helpers import FakeSurface

ANSWER = """**Futterquellen:**
* Lindenallee
**Risiken:**
* Bundesstraße
**Fazit:**
Solider Standort.
**Bewertung:** 8/10"""


class _Model:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = []

    async def generate(self, image_b64, lat, lng, radius):
        self.calls.append((image_b64, lat, lng, radius))
        if self.error is not None:
            raise self.error
        return ANSWER


class ApiTestCase(unittest.TestCase):
    limit = 5

    def setUp(self):
        self.model = _Model()
        self.quota = DailyQuota(limit=self.limit)
        self.ws = build_workspace(
            None, model=self.model, quota=self.quota, surface=FakeSurface(), settle_seconds=0,
        )
        app.dependency_overrides[get_workspace] = lambda: self.ws
        self.addCleanup(app.dependency_overrides.clear)

        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def _wait_for_status(self, *statuses, timeout: float = 3.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            body = self.client.get("/api/analysis").json()
            if body["status"] in statuses:
                return body
            if time.monotonic() > deadline:
                self.fail(f"analysis stuck in {body['status']}")
            time.sleep(0.01)


class TestAnalyzeProxy(ApiTestCase):
    payload = {"image": "aW1n", "lat": 52.52, "lng": 13.405, "radius": 2000}

    def test_root_and_health(self):
        self.assertEqual(self.client.get("/").status_code, 200)
        self.assertEqual(self.client.get("/api/health").json(), {"status": "ok"})

    def test_success(self):
        resp = self.client.post("/api/analyze", json=self.payload)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"text": ANSWER})
        self.assertEqual(self.model.calls, [("aW1n", 52.52, 13.405, 2000)])
        self.assertEqual(self.client.get("/api/quota").json()["used"], 1)

    def test_other_methods_rejected(self):
        resp = self.client.get("/api/analyze")
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(resp.json(), {"error": "Method Not Allowed"})

    def test_missing_image(self):
        resp = self.client.post("/api/analyze", json={"lat": 1.0, "lng": 2.0})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("error", resp.json())
        self.assertEqual(self.model.calls, [])

    def test_non_numeric_coordinates(self):
        resp = self.client.post("/api/analyze", json={"image": "x", "lat": "north", "lng": 2.0})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("lat", resp.json()["error"])

    def test_missing_coordinates(self):
        resp = self.client.post("/api/analyze", json={"image": "x"})
        self.assertEqual(resp.status_code, 400)

    def test_model_failure_is_500_and_not_counted(self):
        self.model.error = UpstreamError("Gemini said no")
        resp = self.client.post("/api/analyze", json=self.payload)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "AI analysis failed: Gemini said no"})
        self.assertEqual(self.quota.count, 0)

    def test_unexpected_failure_is_500(self):
        self.model.error = RuntimeError("boom")
        resp = self.client.post("/api/analyze", json=self.payload)
        self.assertEqual(resp.status_code, 500)
        self.assertIn("boom", resp.json()["error"])


class TestQuotaExhausted(ApiTestCase):
    limit = 1

    def test_second_request_is_429(self):
        payload = {"image": "aW1n", "lat": 1.0, "lng": 2.0}
        self.assertEqual(self.client.post("/api/analyze", json=payload).status_code, 200)
        resp = self.client.post("/api/analyze", json=payload)
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json(), {"error": QUOTA_EXCEEDED_MESSAGE})
        self.assertEqual(len(self.model.calls), 1)

        quota = self.client.get("/api/quota").json()
        self.assertEqual((quota["limit"], quota["used"], quota["remaining"]), (1, 1, 0))


class TestSites(ApiTestCase):
    def test_crud(self):
        resp = self.client.post("/api/sites", json={"lat": 52.5, "lng": 13.4})
        self.assertEqual(resp.status_code, 201)
        site = resp.json()
        self.assertEqual(site["radius"], 2000)

        listing = self.client.get("/api/sites").json()
        self.assertEqual(listing["selected_id"], site["id"])
        self.assertEqual(listing["radius_options"], [1000, 2000, 3000])
        self.assertEqual(listing["limit"], 3)

        resp = self.client.patch(f"/api/sites/{site['id']}", json={"radius": 3000})
        self.assertEqual(resp.json()["radius"], 3000)
        resp = self.client.patch(f"/api/sites/{site['id']}", json={"radius": 2500})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("radius", resp.json()["error"])

        self.assertEqual(self.client.delete(f"/api/sites/{site['id']}").status_code, 204)
        self.assertEqual(self.client.delete(f"/api/sites/{site['id']}").status_code, 404)
        self.assertEqual(self.client.get("/api/sites").json()["sites"], [])

    def test_limit_is_409(self):
        for i in range(3):
            self.client.post("/api/sites", json={"lat": 50.0 + i, "lng": 10.0})
        resp = self.client.post("/api/sites", json={"lat": 1.0, "lng": 1.0})
        self.assertEqual(resp.status_code, 409)
        self.assertIn("error", resp.json())

    def test_out_of_range_latitude(self):
        resp = self.client.post("/api/sites", json={"lat": 95.0, "lng": 1.0})
        self.assertEqual(resp.status_code, 400)

    def test_select_unknown(self):
        resp = self.client.post("/api/sites/nope/select")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "Site not found."})


class TestAnalysisSession(ApiTestCase):
    def test_full_flow(self):
        site = self.client.post("/api/sites", json={"lat": 52.5219, "lng": 13.4049}).json()

        resp = self.client.post(f"/api/sites/{site['id']}/analysis")
        self.assertEqual(resp.status_code, 202)
        self.assertEqual(resp.json()["status"], "capturing")
        self.assertTrue(resp.json()["is_loading"])

        body = self._wait_for_status("succeeded", "failed")
        self.assertEqual(body["status"], "succeeded")
        self.assertTrue(body["is_open"])
        result = body["result"]
        self.assertEqual(result["sources"], ["Lindenallee"])
        self.assertEqual(result["risks"], ["Bundesstraße"])
        self.assertEqual(result["summary"], "Solider Standort.")
        self.assertEqual(result["score"]["value"], 8)
        self.assertEqual(result["score"]["label"], "excellent")
        self.assertEqual(self.quota.count, 1)

        export = self.client.get("/api/analysis/export")
        self.assertEqual(export.status_code, 200)
        self.assertEqual(export.text, ANSWER)
        self.assertIn(
            'filename="Analyse-Bienenstock-52.52_13.40.txt"',
            export.headers["content-disposition"],
        )

        closed = self.client.delete("/api/analysis").json()
        self.assertEqual(closed["status"], "idle")
        self.assertFalse(closed["is_open"])
        self.assertEqual(self.client.get("/api/analysis/export").status_code, 404)

    def test_failure_is_reported(self):
        self.model.error = UpstreamError("model unavailable")
        site = self.client.post("/api/sites", json={"lat": 1.0, "lng": 2.0}).json()
        self.client.post(f"/api/sites/{site['id']}/analysis")
        body = self._wait_for_status("succeeded", "failed")
        self.assertEqual(body["status"], "failed")
        self.assertEqual(body["error"], "model unavailable")

    def test_unknown_site(self):
        resp = self.client.post("/api/sites/nope/analysis")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": NOT_READY_MESSAGE})
        self.assertEqual(self.client.get("/api/analysis").json()["status"], "failed")

    def test_export_without_result(self):
        resp = self.client.get("/api/analysis/export")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "No analysis result to export."})


class TestSearch(ApiTestCase):
    def test_centres_on_first_result(self):
        site = self.client.post("/api/sites", json={"lat": 1.0, "lng": 2.0}).json()
        found = [
            {"display_name": "Marienplatz, München", "lat": 48.137, "lng": 11.575},
            {"display_name": "Marienplatz, Hamburg", "lat": 53.55, "lng": 10.0},
        ]
        with mock.patch("api.routes.search.search_address", new=mock.AsyncMock(return_value=found)):
            resp = self.client.get("/api/search", params={"q": "Marienplatz"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["results"]), 2)

        listing = self.client.get("/api/sites").json()
        self.assertEqual(listing["search_center"], {"lat": 48.137, "lng": 11.575})
        self.assertIsNone(listing["selected_id"])
        self.assertEqual(listing["sites"][0]["id"], site["id"])

    def test_no_results(self):
        with mock.patch("api.routes.search.search_address", new=mock.AsyncMock(return_value=[])):
            resp = self.client.get("/api/search", params={"q": "Atlantis"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "No results found."})

    def test_empty_query(self):
        self.assertEqual(self.client.get("/api/search").status_code, 400)


if __name__ == "__main__":
    unittest.main()

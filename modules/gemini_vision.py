"""
Gemini Vision — multimodal forage assessment via the Gemini REST API.

Sends the captured satellite image together with an expert-beekeeper
prompt and returns the model's Markdown answer untouched. Uses plain
HTTPS through httpx (no SDK dependency); the API key never leaves the
server.
"""

from __future__ import annotations

import logging
import os

import httpx

from modules.errors import UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_GENERATE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "120"))

# ── Prompt ───────────────────────────────────────────────────────── #

FORAGE_PROMPT = """\
Du bist ein erfahrener Imkermeister und Vegetationskundler. Vor dir liegt ein \
Satellitenbild des Flugradius eines Bienenstocks an den Koordinaten \
Breitengrad {lat}, Längengrad {lng} mit einem Radius von {radius} Metern.

Beschreibe zuerst wörtlich, was auf dem Bild zu sehen ist (Wald, Felder, \
Grünland, Siedlungen, Gewässer, Straßen). Ergänze das mit deinem Wissen über \
die Region: typische Trachtpflanzen, Blühzeiten und landwirtschaftliche Nutzung.

Antworte kurz und stichpunktartig im Markdown-Format mit genau diesen Abschnitten:

**Futterquellen:**
* Hauptvegetationstypen auf dem Bild.
* Typische Trachtpflanzen der Region und ihr Nutzen (Nektar/Pollen/Honigtau).

**Risiken:**
* Mögliche Nachteile (z.B. Monokulturen, Pestizideinsatz, Industrie, Verkehr, Wasserflächen).

**Fazit:**
Fasse die Eignung des Standorts in ein bis zwei Sätzen zusammen.

Schließe mit einer eigenen Zeile im Format **Bewertung:** N/10 ab, wobei N das \
Trachtpotenzial von 1 (sehr schlecht) bis 10 (ausgezeichnet) bewertet.
"""


def build_forage_prompt(lat: float, lng: float, radius: int) -> str:
    return FORAGE_PROMPT.format(lat=lat, lng=lng, radius=radius)


def _gemini_api_key() -> str | None:
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")


def _error_message(resp: httpx.Response) -> str:
    """Pull ``error.message`` out of a Gemini error body, else the status line."""
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return str(data["error"].get("message") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


class GeminiVisionModel:
    """Multimodal Gemini client used by the analysis proxy.

    Args:
        api_key: Overrides ``GEMINI_API_KEY`` / ``GOOGLE_API_KEY``.
        model: Gemini model name.
        client: Optional ``httpx.AsyncClient`` (tests pass a mock transport).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = GEMINI_MODEL,
        client: httpx.AsyncClient | None = None,
        timeout: float = GEMINI_TIMEOUT_SECONDS,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._client = client
        self.timeout = timeout

    async def generate(self, image_b64: str, lat: float, lng: float, radius: int) -> str:
        """Return the model's raw text for one site image.

        Raises:
            UpstreamError: Missing key, HTTP/transport failure or an empty
                or malformed model response.
        """
        api_key = self._api_key or _gemini_api_key()
        if not api_key:
            raise UpstreamError("GEMINI_API_KEY is not set on the server.")

        body = {
            "contents": [{
                "parts": [
                    {"text": build_forage_prompt(lat, lng, radius)},
                    {"inline_data": {"mime_type": "image/jpeg", "data": image_b64}},
                ],
            }],
            "generationConfig": {"temperature": 0.4},
        }
        url = GEMINI_GENERATE_URL.format(model=self.model)

        try:
            if self._client is not None:
                resp = await self._client.post(url, params={"key": api_key}, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, params={"key": api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.error("Gemini request failed: %s", exc)
            raise UpstreamError(f"Gemini request failed: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error("Gemini returned %d: %s", resp.status_code, message)
            raise UpstreamError(message)

        try:
            parts = resp.json()["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("Gemini returned no analysis text.") from exc

        logger.info(
            "Gemini (%s) analyzed (%.4f, %.4f) r=%dm — %d chars",
            self.model, lat, lng, radius, len(text),
        )
        return text

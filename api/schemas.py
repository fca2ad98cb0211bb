"""
Pydantic models — Data Contracts for the Api-Scout API.

These schemas are the single source of truth for request/response
shapes. Error responses always use ``ErrorResponse``.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from modules.formatter import FormattedAnalysis, Score, Section
from modules.lifecycle import AnalysisStatus, AnalysisView
from modules.quota import QuotaSnapshot
from modules.sites import DEFAULT_FLIGHT_RADIUS_METERS, Site


class ErrorResponse(BaseModel):
    error: str


class Coordinates(BaseModel):
    lat: float
    lng: float


# ---------- Analysis proxy ---------- #

class AnalyzeRequest(BaseModel):
    image: str | None = Field(default=None, description="Base64-encoded JPEG")
    lat: float
    lng: float
    radius: int = Field(default=DEFAULT_FLIGHT_RADIUS_METERS, gt=0)


class AnalyzeResponse(BaseModel):
    text: str


class QuotaResponse(BaseModel):
    limit: int
    used: int
    remaining: int
    day: date

    @classmethod
    def from_snapshot(cls, snap: QuotaSnapshot) -> "QuotaResponse":
        return cls(limit=snap.limit, used=snap.used, remaining=snap.remaining, day=snap.day)


# ---------- Sites ---------- #

class SiteCreateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class RadiusUpdateRequest(BaseModel):
    radius: int


class SiteOut(BaseModel):
    id: str
    lat: float
    lng: float
    radius: int

    @classmethod
    def from_site(cls, site: Site) -> "SiteOut":
        return cls(id=site.id, lat=site.lat, lng=site.lng, radius=site.radius)


class SiteListResponse(BaseModel):
    sites: list[SiteOut]
    limit: int
    radius_options: list[int]
    selected_id: str | None = None
    search_center: Coordinates | None = None


# ---------- Analysis session ---------- #

class ScoreOut(BaseModel):
    value: int | None
    maximum: int
    label: str
    display: str

    @classmethod
    def from_score(cls, score: Score) -> "ScoreOut":
        return cls(value=score.value, maximum=score.maximum, label=score.label, display=score.display)


class SectionOut(BaseModel):
    heading: str | None
    items: list[str]
    paragraphs: list[str]

    @classmethod
    def from_section(cls, sec: Section) -> "SectionOut":
        return cls(heading=sec.heading, items=sec.items, paragraphs=sec.paragraphs)


class FormattedAnalysisOut(BaseModel):
    raw_text: str
    fallback: bool
    is_empty: bool
    sources: list[str]
    risks: list[str]
    summary: str
    score: ScoreOut | None
    sections: list[SectionOut]
    blocks: list[dict[str, Any]]

    @classmethod
    def from_result(cls, result: FormattedAnalysis) -> "FormattedAnalysisOut":
        return cls(
            raw_text=result.raw_text,
            fallback=result.fallback,
            is_empty=result.is_empty,
            sources=result.sources,
            risks=result.risks,
            summary=result.summary,
            score=ScoreOut.from_score(result.score) if result.score else None,
            sections=[SectionOut.from_section(s) for s in result.sections],
            blocks=[asdict(b) for b in result.blocks],
        )


class AnalysisStateResponse(BaseModel):
    status: AnalysisStatus
    token: int
    is_open: bool
    is_loading: bool
    site: SiteOut | None = None
    result: FormattedAnalysisOut | None = None
    error: str | None = None

    @classmethod
    def from_view(cls, view: AnalysisView) -> "AnalysisStateResponse":
        return cls(
            status=view.status,
            token=view.token,
            is_open=view.is_open,
            is_loading=view.is_loading,
            site=SiteOut.from_site(view.site) if view.site else None,
            result=FormattedAnalysisOut.from_result(view.result) if view.result else None,
            error=view.error,
        )


# ---------- Address search ---------- #

class SearchResult(BaseModel):
    display_name: str
    lat: float
    lng: float


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResult]

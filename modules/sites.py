"""
Site store — the application state that owns the hive sites.

Sites are ephemeral: they live for the lifetime of the process and are
never persisted. Other components look sites up by id through the store
and never keep their own copy of the collection.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

MAX_SITES = 3
FLIGHT_RADIUS_OPTIONS: tuple[int, ...] = (1000, 2000, 3000)
DEFAULT_FLIGHT_RADIUS_METERS = 2000


@dataclass(frozen=True)
class Site:
    id: str
    lat: float
    lng: float
    radius: int = DEFAULT_FLIGHT_RADIUS_METERS


class SiteLimitError(Exception):
    """Raised when a site is added while ``MAX_SITES`` already exist."""


class SiteNotFoundError(KeyError):
    pass


class SiteStore:
    """Ordered collection of at most ``MAX_SITES`` sites plus view selection."""

    def __init__(self, max_sites: int = MAX_SITES) -> None:
        self.max_sites = max_sites
        self._sites: dict[str, Site] = {}
        self.selected_id: str | None = None
        self.search_center: tuple[float, float] | None = None

    def __len__(self) -> int:
        return len(self._sites)

    def list(self) -> list[Site]:
        return list(self._sites.values())

    def get(self, site_id: str) -> Site | None:
        return self._sites.get(site_id)

    @property
    def is_full(self) -> bool:
        return len(self._sites) >= self.max_sites

    def add(self, lat: float, lng: float) -> Site:
        """Create a site at (lat, lng) with the default radius and select it."""
        if self.is_full:
            raise SiteLimitError(
                f"At most {self.max_sites} sites can be planned at the same time."
            )
        site = Site(id=str(uuid.uuid4()), lat=lat, lng=lng)
        self._sites[site.id] = site
        self.selected_id = site.id
        logger.info("Added site %s at (%.5f, %.5f)", site.id, lat, lng)
        return site

    def delete(self, site_id: str) -> None:
        if self._sites.pop(site_id, None) is None:
            raise SiteNotFoundError(site_id)
        if self.selected_id == site_id:
            self.selected_id = None
        logger.info("Deleted site %s", site_id)

    def update_radius(self, site_id: str, radius: int) -> Site:
        if radius not in FLIGHT_RADIUS_OPTIONS:
            raise ValueError(
                f"radius must be one of {', '.join(str(r) for r in FLIGHT_RADIUS_OPTIONS)}"
            )
        site = self._sites.get(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        updated = replace(site, radius=radius)
        self._sites[site_id] = updated
        return updated

    def select(self, site_id: str | None) -> Site | None:
        if site_id is None:
            self.selected_id = None
            return None
        site = self._sites.get(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        self.selected_id = site_id
        self.search_center = None
        return site

    def center_on(self, lat: float, lng: float) -> None:
        """Recentre on a search result; clears the selection."""
        self.search_center = (lat, lng)
        self.selected_id = None

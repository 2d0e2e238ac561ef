"""
Route provider adapters.

Providers fetch an ordered list of waypoints between two coordinates and raise
``ProviderUnavailable`` on failure. ``RouteService`` is the boundary the
movement simulator talks to: it applies a timeout and converts every failure
into a straight two-point path (or an empty route), so callers never see a
provider error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

import aiohttp

from safety_map import config
from safety_map.errors import ProviderUnavailable
from safety_map.models import Coordinates, TravelProfile

logger = logging.getLogger(__name__)


class RouteProvider(Protocol):
    async def get_route(
        self, start: Coordinates, end: Coordinates, profile: TravelProfile
    ) -> List[Coordinates]:
        ...


class StraightLineProvider:
    """Used when no directions token is configured."""

    async def get_route(
        self, start: Coordinates, end: Coordinates, profile: TravelProfile
    ) -> List[Coordinates]:
        return [start, end]


class MapboxDirectionsProvider:
    def __init__(
        self,
        token: str,
        base_url: str = config.MAPBOX_DIRECTIONS_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not token:
            raise ProviderUnavailable("Mapbox token is not configured")
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._session = session

    def build_url(self, start: Coordinates, end: Coordinates, profile: TravelProfile) -> str:
        return (
            f"{self.base_url}/{profile.value}/"
            f"{start.longitude},{start.latitude};{end.longitude},{end.latitude}"
        )

    async def get_route(
        self, start: Coordinates, end: Coordinates, profile: TravelProfile
    ) -> List[Coordinates]:
        url = self.build_url(start, end, profile)
        params = {"geometries": "geojson", "access_token": self.token}
        try:
            if self._session is not None:
                data = await self._fetch(self._session, url, params)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._fetch(session, url, params)
        except aiohttp.ClientError as exc:
            raise ProviderUnavailable(f"Routing request failed: {exc}") from exc

        return parse_directions(data)

    @staticmethod
    async def _fetch(session: aiohttp.ClientSession, url: str, params: dict) -> dict:
        async with session.get(url, params=params) as resp:
            if resp.status != 200:
                raise ProviderUnavailable(f"Routing API error: {resp.status}")
            return await resp.json()


def parse_directions(data: dict) -> List[Coordinates]:
    """Extract the first route's GeoJSON line as coordinates."""
    if data.get("code") != "Ok" or not data.get("routes"):
        raise ProviderUnavailable("No route found")

    geometry = data["routes"][0].get("geometry", {})
    try:
        return [Coordinates(longitude=float(lon), latitude=float(lat)) for lon, lat, *_ in geometry.get("coordinates", [])]
    except (TypeError, ValueError) as exc:
        raise ProviderUnavailable(f"Malformed route geometry: {exc}") from exc


def build_default_provider() -> RouteProvider:
    if config.MAPBOX_TOKEN:
        return MapboxDirectionsProvider(config.MAPBOX_TOKEN)
    logger.warning("Mapbox token not configured, using straight-line routing")
    return StraightLineProvider()


class RouteService:
    def __init__(
        self,
        provider: RouteProvider,
        timeout_s: float = config.ROUTE_TIMEOUT_S,
        fallback_to_straight_line: bool = True,
    ) -> None:
        self.provider = provider
        self.timeout_s = timeout_s
        self.fallback_to_straight_line = fallback_to_straight_line

    async def get_route(
        self, start: Coordinates, end: Coordinates, profile: TravelProfile
    ) -> List[Coordinates]:
        try:
            return await asyncio.wait_for(self.provider.get_route(start, end, profile), self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Route request timed out after %.1fs", self.timeout_s)
        except ProviderUnavailable as exc:
            logger.warning("Route provider unavailable: %s", exc)
        except Exception:
            logger.exception("Unexpected route provider failure")

        if self.fallback_to_straight_line:
            return [start, end]
        return []

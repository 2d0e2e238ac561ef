"""External event feed: fetches incident records near a location and fills in missing fields."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

import aiohttp

from safety_map import config
from safety_map.errors import InvalidConfiguration, ProviderUnavailable
from safety_map.generation import affected_radius_m, describe
from safety_map.models import (
    Coordinates,
    Incident,
    IncidentCategory,
    IncidentStatus,
    Severity,
    TimelineEntry,
    TimelineKind,
    utc_now,
)

logger = logging.getLogger(__name__)


class EventFeed(Protocol):
    async def fetch(self, location: Coordinates) -> List[Incident]:
        ...


def _parse_time(value, default: datetime) -> datetime:
    if value in (None, ""):
        return default
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_location(payload: dict) -> Coordinates:
    location = payload.get("location")
    if isinstance(location, dict):
        return Coordinates(
            longitude=float(location.get("longitude", location.get("lng"))),
            latitude=float(location.get("latitude", location.get("lat"))),
        )
    if isinstance(location, (list, tuple)) and len(location) >= 2:
        return Coordinates(longitude=float(location[0]), latitude=float(location[1]))
    return Coordinates(longitude=float(payload["longitude"]), latitude=float(payload["latitude"]))


def _parse_radius(payload: dict, incident_id: str, severity: Severity, category: IncidentCategory) -> float:
    default = affected_radius_m(severity, category)
    radius = payload.get("affected_radius_m", payload.get("affectedArea"))
    if radius is None:
        return default
    try:
        value = float(radius)
    except (TypeError, ValueError):
        value = None
    if value is None or not value > 0:
        logger.warning("Feed record %s has unusable affected radius %r, using %.0fm", incident_id, radius, default)
        return default
    return value


def incident_from_feed(payload: dict, now: Optional[datetime] = None) -> Incident:
    """Normalize one feed record; raises ``InvalidConfiguration`` when it cannot be used."""
    now = now or utc_now()
    try:
        incident_id = str(payload["id"])
        location = _parse_location(payload)
        category = IncidentCategory(payload.get("category") or payload.get("type") or IncidentCategory.EMERGENCY)
        severity = Severity(payload.get("severity") or Severity.LOW)
        status = IncidentStatus(payload.get("status") or IncidentStatus.REPORTED)
        created_at = _parse_time(payload.get("created_at") or payload.get("timestamp"), now)
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
        raise InvalidConfiguration(f"Unusable feed record {payload.get('id')!r}: {exc}") from exc

    description = payload.get("description") or describe(category, severity)
    radius = _parse_radius(payload, incident_id, severity, category)
    entry = TimelineEntry(
        timestamp=created_at,
        status=status,
        severity=severity,
        description=description,
        kind=TimelineKind.UPDATE,
    )
    return Incident(
        incident_id=incident_id,
        category=category,
        location=location,
        created_at=created_at,
        timeline=(entry,),
        affected_radius_m=radius,
    )


def parse_feed(records: Iterable[dict], now: Optional[datetime] = None) -> List[Incident]:
    incidents = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning("Skipping feed record of type %s", type(record).__name__)
            continue
        try:
            incidents.append(incident_from_feed(record, now=now))
        except InvalidConfiguration as exc:
            logger.warning("Skipping feed record: %s", exc)
    return incidents


class StaticEventFeed:
    def __init__(self, records: Iterable[dict] = ()) -> None:
        self.records = list(records)

    async def fetch(self, location: Coordinates) -> List[Incident]:
        return parse_feed(self.records)


class HttpEventFeed:
    """Polls a JSON endpoint returning a list of incident records."""

    def __init__(self, url: str, timeout_s: float = config.FEED_TIMEOUT_S) -> None:
        self.url = url
        self.timeout_s = timeout_s

    async def fetch(self, location: Coordinates) -> List[Incident]:
        params = {"lat": str(location.latitude), "lng": str(location.longitude)}
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.url, params=params) as resp:
                    if resp.status != 200:
                        raise ProviderUnavailable(f"Event feed error: {resp.status}")
                    data = await resp.json()
        except ValueError as exc:
            raise ProviderUnavailable(f"Event feed returned invalid JSON: {exc}") from exc
        except aiohttp.ClientError as exc:
            raise ProviderUnavailable(f"Event feed request failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable("Event feed timed out") from exc

        if not isinstance(data, list):
            raise ProviderUnavailable("Event feed did not return a list")
        return parse_feed(data)


def build_default_feed() -> Optional[EventFeed]:
    if config.EVENT_FEED_URL:
        return HttpEventFeed(config.EVENT_FEED_URL)
    return None

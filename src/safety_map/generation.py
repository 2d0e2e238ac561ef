from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

from safety_map.geodesy import destination_point, distance_m
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

GENERATION_RADIUS_M = 2000.0
MIN_GENERATED = 3
MAX_GENERATED = 6
FIXED_INCIDENT_ID = "fixed-incident-1"
FIXED_INCIDENT_OFFSET_M = 50.0

BASE_AFFECTED_RADIUS_M = {
    Severity.LOW: 50.0,
    Severity.MEDIUM: 150.0,
    Severity.HIGH: 300.0,
    Severity.CRITICAL: 500.0,
}

INCIDENT_DESCRIPTIONS = {
    IncidentCategory.CRIME: {
        Severity.LOW: "Minor disturbance reported in area",
        Severity.MEDIUM: "Police activity reported nearby",
        Severity.HIGH: "Active police investigation in progress",
        Severity.CRITICAL: "Major incident - avoid area",
    },
    IncidentCategory.EMERGENCY: {
        Severity.LOW: "Medical response in area",
        Severity.MEDIUM: "Emergency services responding",
        Severity.HIGH: "Active emergency situation",
        Severity.CRITICAL: "Critical emergency - evacuate if possible",
    },
    IncidentCategory.WEATHER: {
        Severity.LOW: "Weather advisory in effect",
        Severity.MEDIUM: "Weather warning issued",
        Severity.HIGH: "Severe weather conditions",
        Severity.CRITICAL: "Extreme weather - seek shelter",
    },
    IncidentCategory.TRAFFIC: {
        Severity.LOW: "Minor traffic delays",
        Severity.MEDIUM: "Traffic congestion reported",
        Severity.HIGH: "Major traffic incident",
        Severity.CRITICAL: "Road closure - use alternate route",
    },
}


def affected_radius_m(severity: Severity, category: IncidentCategory) -> float:
    radius = BASE_AFFECTED_RADIUS_M[severity]
    if category is IncidentCategory.WEATHER:
        return radius * 2
    return radius


def describe(category: IncidentCategory, severity: Severity) -> str:
    return INCIDENT_DESCRIPTIONS[category][severity]


def initial_status(severity: Severity, rng: random.Random) -> IncidentStatus:
    # higher severity is more likely to already have a response underway
    if severity is Severity.CRITICAL:
        return IncidentStatus.IN_PROGRESS if rng.random() > 0.3 else IncidentStatus.INVESTIGATING
    if severity is Severity.HIGH:
        return IncidentStatus.INVESTIGATING if rng.random() > 0.5 else IncidentStatus.REPORTED
    if severity is Severity.MEDIUM:
        return IncidentStatus.INVESTIGATING if rng.random() > 0.7 else IncidentStatus.REPORTED
    return IncidentStatus.REPORTED


def build_incident(
    category: IncidentCategory,
    severity: Severity,
    location: Coordinates,
    status: IncidentStatus = IncidentStatus.REPORTED,
    created_at: Optional[datetime] = None,
    incident_id: Optional[str] = None,
    description: Optional[str] = None,
    affected_radius: Optional[float] = None,
) -> Incident:
    created_at = created_at or utc_now()
    entry = TimelineEntry(
        timestamp=created_at,
        status=status,
        severity=severity,
        description=description or describe(category, severity),
        kind=TimelineKind.UPDATE,
    )
    return Incident(
        incident_id=incident_id or f"event-{uuid4().hex[:12]}",
        category=category,
        location=location,
        created_at=created_at,
        timeline=(entry,),
        affected_radius_m=affected_radius if affected_radius is not None else affected_radius_m(severity, category),
    )


def generate_incidents(
    observer: Coordinates,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    radius_m: float = GENERATION_RADIUS_M,
) -> List[Incident]:
    """Simulated incidents scattered around the observer, nearest first."""
    rng = rng or random.Random()
    now = now or utc_now()
    incidents = []

    for _ in range(rng.randint(MIN_GENERATED, MAX_GENERATED)):
        category = rng.choice(list(IncidentCategory))
        severity = rng.choice(list(Severity))
        location = destination_point(observer, rng.random() * 360.0, rng.random() * radius_m)
        created_at = now - timedelta(seconds=rng.random() * 3600)

        incident = build_incident(
            category,
            severity,
            location,
            status=initial_status(severity, rng),
            created_at=created_at,
        )
        incidents.append(incident.with_distance(distance_m(observer, location)))

    incidents.sort(key=lambda item: item.distance_to_observer)
    return incidents


def fixed_incident(
    origin: Coordinates,
    now: Optional[datetime] = None,
    offset_m: float = FIXED_INCIDENT_OFFSET_M,
    bearing: float = 90.0,
) -> Incident:
    """A critical in-progress emergency close to the start, so the closest safety bands can be reached."""
    now = now or utc_now()
    return build_incident(
        IncidentCategory.EMERGENCY,
        Severity.CRITICAL,
        destination_point(origin, bearing, offset_m),
        status=IncidentStatus.IN_PROGRESS,
        created_at=now - timedelta(minutes=30),
        incident_id=FIXED_INCIDENT_ID,
        description="Active emergency situation - maintain distance",
    )

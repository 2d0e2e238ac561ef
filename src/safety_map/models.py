from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from safety_map.errors import InvalidConfiguration


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)

    def step_up(self) -> "Severity":
        return SEVERITY_ORDER[min(self.rank + 1, len(SEVERITY_ORDER) - 1)]

    def step_down(self) -> "Severity":
        return SEVERITY_ORDER[max(self.rank - 1, 0)]


SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


class IncidentStatus(str, Enum):
    REPORTED = "reported"
    INVESTIGATING = "investigating"
    IN_PROGRESS = "in_progress"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class IncidentCategory(str, Enum):
    CRIME = "crime"
    EMERGENCY = "emergency"
    WEATHER = "weather"
    TRAFFIC = "traffic"


class TimelineKind(str, Enum):
    UPDATE = "update"
    STATUS_CHANGE = "status_change"
    SEVERITY_CHANGE = "severity_change"
    ESCALATION = "escalation"


class TravelProfile(str, Enum):
    WALKING = "walking"
    DRIVING = "driving"

    @property
    def default_speed(self) -> float:
        return TRAVEL_SPEEDS[self]


# metres per second
TRAVEL_SPEEDS = {
    TravelProfile.WALKING: 1.5,
    TravelProfile.DRIVING: 13.9,
}


class SafetyLevel(str, Enum):
    SAFE = "safe"
    CAUTION = "caution"
    AT_RISK = "at_risk"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Coordinates:
    longitude: float
    latitude: float

    def __post_init__(self) -> None:
        for name, value, limit in (("longitude", self.longitude, 180.0), ("latitude", self.latitude, 90.0)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConfiguration(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or abs(value) > limit:
                raise InvalidConfiguration(f"{name} out of range: {value}")

    def to_list(self) -> list[float]:
        return [self.longitude, self.latitude]


@dataclass(frozen=True)
class TimelineEntry:
    timestamp: datetime
    status: IncidentStatus
    severity: Severity
    description: str
    kind: TimelineKind = TimelineKind.UPDATE

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "severity": self.severity.value,
            "description": self.description,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class Incident:
    """A hazard record. Current status, severity and description mirror the last timeline entry."""

    incident_id: str
    category: IncidentCategory
    location: Coordinates
    created_at: datetime
    timeline: Tuple[TimelineEntry, ...]
    distance_to_observer: Optional[float] = None
    affected_radius_m: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.timeline:
            raise InvalidConfiguration(f"incident {self.incident_id} needs at least one timeline entry")

    @property
    def last_entry(self) -> TimelineEntry:
        return self.timeline[-1]

    @property
    def status(self) -> IncidentStatus:
        return self.last_entry.status

    @property
    def severity(self) -> Severity:
        return self.last_entry.severity

    @property
    def description(self) -> str:
        return self.last_entry.description

    @property
    def is_active(self) -> bool:
        return self.status is not IncidentStatus.RESOLVED

    def with_entry(self, entry: TimelineEntry) -> "Incident":
        return replace(self, timeline=self.timeline + (entry,))

    def with_distance(self, distance_m: Optional[float]) -> "Incident":
        return replace(self, distance_to_observer=distance_m)

    def to_dict(self) -> dict:
        return {
            "id": self.incident_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "location": self.location.to_list(),
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "distance_m": None if self.distance_to_observer is None else round(self.distance_to_observer, 1),
            "affected_radius_m": self.affected_radius_m,
            "timeline": [entry.to_dict() for entry in self.timeline],
        }


@dataclass(frozen=True)
class SafetyAssessment:
    level: SafetyLevel
    nearest_distance_m: Optional[float]
    nearest_severity: Optional[Severity]
    message: str
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "nearest_distance_m": None if self.nearest_distance_m is None else round(self.nearest_distance_m, 1),
            "nearest_severity": None if self.nearest_severity is None else self.nearest_severity.value,
            "message": self.message,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ActivityLog:
    activity_id: str
    kind: str
    description: str
    incident_id: str
    operator_id: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.activity_id,
            "kind": self.kind,
            "description": self.description,
            "incident_id": self.incident_id,
            "operator_id": self.operator_id,
            "timestamp": self.timestamp.isoformat(),
        }

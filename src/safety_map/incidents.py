from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import count
from typing import Callable, Dict, Iterable, List, Optional

from safety_map.errors import UnknownIncident
from safety_map.geodesy import distance_m
from safety_map.models import (
    ActivityLog,
    Coordinates,
    Incident,
    IncidentStatus,
    Severity,
    TimelineEntry,
    TimelineKind,
    utc_now,
)

logger = logging.getLogger(__name__)

MIN_DWELL = timedelta(seconds=30)
STATUS_CHANGE_PROBABILITY = 0.30
SEVERITY_CHANGE_PROBABILITY = 0.15
DEESCALATION_PROBABILITY = 0.5

STATUS_TRANSITIONS = {
    IncidentStatus.REPORTED: (IncidentStatus.INVESTIGATING, IncidentStatus.REPORTED),
    IncidentStatus.INVESTIGATING: (
        IncidentStatus.IN_PROGRESS,
        IncidentStatus.INVESTIGATING,
        IncidentStatus.MONITORING,
    ),
    IncidentStatus.IN_PROGRESS: (
        IncidentStatus.INVESTIGATING,
        IncidentStatus.MONITORING,
        IncidentStatus.IN_PROGRESS,
    ),
    IncidentStatus.MONITORING: (IncidentStatus.RESOLVED, IncidentStatus.MONITORING),
    IncidentStatus.RESOLVED: (IncidentStatus.RESOLVED,),
}

STATUS_DESCRIPTIONS = {
    IncidentStatus.REPORTED: "Incident reported",
    IncidentStatus.INVESTIGATING: "Authorities are investigating",
    IncidentStatus.IN_PROGRESS: "Active response in progress",
    IncidentStatus.MONITORING: "Situation being monitored",
    IncidentStatus.RESOLVED: "Incident resolved",
}


@dataclass(frozen=True)
class SeverityChange:
    severity: Severity
    kind: TimelineKind
    description: str


def next_status(status: IncidentStatus, rng: random.Random) -> IncidentStatus:
    """Pick the next status; most calls leave it unchanged."""
    if rng.random() >= STATUS_CHANGE_PROBABILITY:
        return status
    return rng.choice(STATUS_TRANSITIONS[status])


def next_severity(severity: Severity, status: IncidentStatus, rng: random.Random) -> Optional[SeverityChange]:
    """Escalation only happens while a response is in progress."""
    if rng.random() >= SEVERITY_CHANGE_PROBABILITY:
        return None

    if severity is not Severity.LOW and rng.random() < DEESCALATION_PROBABILITY:
        lowered = severity.step_down()
        return SeverityChange(lowered, TimelineKind.SEVERITY_CHANGE, f"Severity reduced to {lowered.value}")

    if severity is not Severity.CRITICAL and status is IncidentStatus.IN_PROGRESS:
        raised = severity.step_up()
        return SeverityChange(raised, TimelineKind.ESCALATION, f"Incident escalated to {raised.value} severity")

    return None


def advance_incident(incident: Incident, now: datetime, rng: random.Random) -> Incident:
    if now - incident.last_entry.timestamp < MIN_DWELL:
        return incident

    last = incident.last_entry
    status = next_status(last.status, rng)
    severity = last.severity
    kind = TimelineKind.UPDATE
    description = last.description

    if status is not last.status:
        kind = TimelineKind.STATUS_CHANGE
        description = STATUS_DESCRIPTIONS[status]

    # severity is sampled against the status the incident held at the start of the tick
    change = next_severity(last.severity, last.status, rng)
    if change is not None:
        severity, kind, description = change.severity, change.kind, change.description

    entry = TimelineEntry(timestamp=now, status=status, severity=severity, description=description, kind=kind)
    return incident.with_entry(entry)


class IncidentLifecycleEngine:
    """Owns the incident collection and evolves it tick by tick."""

    def __init__(
        self,
        incidents: Iterable[Incident] = (),
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
        operator_id: str = "operator-1",
    ) -> None:
        self.rng = rng or random.Random()
        self.clock = clock
        self.operator_id = operator_id
        self.observer: Optional[Coordinates] = None
        self._incidents: Dict[str, Incident] = {}
        self._activity: List[ActivityLog] = []
        self._activity_ids = count(1)
        self.merge(incidents)

    def __len__(self) -> int:
        return len(self._incidents)

    def get(self, incident_id: str) -> Incident:
        try:
            return self._incidents[incident_id]
        except KeyError:
            raise UnknownIncident(incident_id) from None

    def incidents(self) -> List[Incident]:
        return sorted(self._incidents.values(), key=_distance_key)

    def active_incidents(self) -> List[Incident]:
        return [incident for incident in self.incidents() if incident.is_active]

    def activity(self) -> List[ActivityLog]:
        return list(self._activity)

    def tick(self, now: Optional[datetime] = None) -> List[Incident]:
        """Advance every incident once; returns the ones that gained a timeline entry."""
        now = now or self.clock()
        changed = []
        for incident_id, incident in self._incidents.items():
            updated = advance_incident(incident, now, self.rng)
            if updated is incident:
                continue
            self._incidents[incident_id] = updated
            changed.append(updated)
            if updated.last_entry.kind is not TimelineKind.UPDATE:
                logger.info(
                    "Incident %s: %s (%s, %s)",
                    incident_id,
                    updated.description,
                    updated.status.value,
                    updated.severity.value,
                )
        return changed

    def update_observer(self, position: Coordinates) -> None:
        self.observer = position
        for incident_id, incident in self._incidents.items():
            self._incidents[incident_id] = incident.with_distance(distance_m(position, incident.location))

    def merge(self, incidents: Iterable[Incident]) -> List[Incident]:
        """Add incidents whose id is not known yet; known ids keep their lifecycle state."""
        added = []
        for incident in incidents:
            if incident.incident_id in self._incidents:
                continue
            if self.observer is not None:
                incident = incident.with_distance(distance_m(self.observer, incident.location))
            self._incidents[incident.incident_id] = incident
            added.append(incident)
        if added:
            logger.info("Added %d incident(s), tracking %d", len(added), len(self._incidents))
        return added

    def set_status(self, incident_id: str, status: IncidentStatus) -> Incident:
        incident = self.get(incident_id)
        if status is incident.status:
            return incident
        description = f"Status changed to {status.value.replace('_', ' ')}"
        updated = self._override(incident, status, incident.severity, description, TimelineKind.STATUS_CHANGE)
        self._log_activity("status_change", description, incident_id)
        return updated

    def set_severity(self, incident_id: str, severity: Severity) -> Incident:
        incident = self.get(incident_id)
        if severity is incident.severity:
            return incident
        description = f"Severity changed to {severity.value}"
        updated = self._override(incident, incident.status, severity, description, TimelineKind.SEVERITY_CHANGE)
        self._log_activity("severity_change", description, incident_id)
        return updated

    def add_note(self, incident_id: str, note: str) -> ActivityLog:
        self.get(incident_id)
        return self._log_activity("note", f"Note added: {note.strip()}", incident_id)

    def _override(
        self,
        incident: Incident,
        status: IncidentStatus,
        severity: Severity,
        description: str,
        kind: TimelineKind,
    ) -> Incident:
        entry = TimelineEntry(
            timestamp=self.clock(),
            status=status,
            severity=severity,
            description=description,
            kind=kind,
        )
        updated = incident.with_entry(entry)
        self._incidents[incident.incident_id] = updated
        logger.info("Operator override on %s: %s", incident.incident_id, description)
        return updated

    def _log_activity(self, kind: str, description: str, incident_id: str) -> ActivityLog:
        entry = ActivityLog(
            activity_id=f"activity-{next(self._activity_ids)}",
            kind=kind,
            description=description,
            incident_id=incident_id,
            operator_id=self.operator_id,
            timestamp=self.clock(),
        )
        self._activity.append(entry)
        return entry


def _distance_key(incident: Incident) -> float:
    if incident.distance_to_observer is None:
        return float("inf")
    return incident.distance_to_observer

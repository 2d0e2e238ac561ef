from __future__ import annotations

from typing import Iterable, Optional

from safety_map.models import Incident, SafetyAssessment, SafetyLevel, Severity

CRITICAL_DISTANCE_M = 40.0
AT_RISK_DISTANCE_M = 100.0
CAUTION_DISTANCE_M = 250.0

SERIOUS = {Severity.HIGH, Severity.CRITICAL}

MESSAGES = {
    SafetyLevel.CRITICAL: "Critical Risk",
    SafetyLevel.AT_RISK: "At Risk",
    SafetyLevel.CAUTION: "Exercise Caution",
    SafetyLevel.SAFE: "Safe",
}


def classify_distance(distance: Optional[float], severity: Optional[Severity]) -> SafetyLevel:
    if distance is None or severity is None:
        return SafetyLevel.SAFE
    if distance < CRITICAL_DISTANCE_M:
        return SafetyLevel.CRITICAL
    if distance < AT_RISK_DISTANCE_M:
        return SafetyLevel.AT_RISK if severity in SERIOUS else SafetyLevel.CAUTION
    if distance < CAUTION_DISTANCE_M:
        return SafetyLevel.CAUTION if severity in SERIOUS else SafetyLevel.SAFE
    return SafetyLevel.SAFE


def nearest_hazard(incidents: Iterable[Incident]) -> tuple[Optional[float], Optional[Severity]]:
    """Nearest active incident; equal distances resolve to the highest severity."""
    best_distance = None
    best_severity = None
    for incident in incidents:
        if not incident.is_active or incident.distance_to_observer is None:
            continue
        distance = incident.distance_to_observer
        if best_distance is None or distance < best_distance:
            best_distance, best_severity = distance, incident.severity
        elif distance == best_distance and incident.severity.rank > best_severity.rank:
            best_severity = incident.severity
    return best_distance, best_severity


def assess_safety(incidents: Iterable[Incident]) -> SafetyAssessment:
    distance, severity = nearest_hazard(incidents)
    level = classify_distance(distance, severity)
    return SafetyAssessment(
        level=level,
        nearest_distance_m=distance,
        nearest_severity=severity,
        message=MESSAGES[level],
        detail=_detail(level, distance, severity),
    )


def _detail(level: SafetyLevel, distance: Optional[float], severity: Optional[Severity]) -> str:
    if distance is None or distance >= CAUTION_DISTANCE_M:
        return "No nearby incidents detected"
    metres = round(distance)
    if level is SafetyLevel.CRITICAL:
        return f"Within {metres}m of {severity.value} incident"
    if distance < AT_RISK_DISTANCE_M:
        if level is SafetyLevel.AT_RISK:
            return f"Within {metres}m of {severity.value} risk"
        return f"Within {metres}m of incident"
    if level is SafetyLevel.CAUTION:
        return f"{metres}m from {severity.value} risk"
    return f"{metres}m from nearest incident"

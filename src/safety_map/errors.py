from __future__ import annotations


class SafetyMapError(Exception):
    """Base class for errors raised by the simulation core."""


class InvalidConfiguration(SafetyMapError, ValueError):
    """Rejected at setup time: bad speed, tick interval, coordinates or profile."""


class ProviderUnavailable(SafetyMapError):
    """A route provider or event feed failed or timed out."""


class UnknownIncident(SafetyMapError, KeyError):
    def __init__(self, incident_id: str) -> None:
        super().__init__(incident_id)
        self.incident_id = incident_id

    def __str__(self) -> str:
        return f"Unknown incident: {self.incident_id}"

from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional, Sequence

from safety_map import config
from safety_map.errors import ProviderUnavailable
from safety_map.feed import EventFeed, build_default_feed
from safety_map.generation import fixed_incident, generate_incidents
from safety_map.geodesy import distance_m
from safety_map.incidents import IncidentLifecycleEngine
from safety_map.models import Coordinates, Incident, SafetyAssessment
from safety_map.movement import MovementSimulator
from safety_map.routing import RouteService, build_default_provider
from safety_map.safety import assess_safety

logger = logging.getLogger(__name__)


class SituationalAwarenessSystem:
    """One tracked agent plus the incidents around it, driven by two periodic schedulers."""

    def __init__(
        self,
        simulator: MovementSimulator,
        engine: IncidentLifecycleEngine,
        feed: Optional[EventFeed] = None,
        incident_tick_s: float = config.INCIDENT_TICK_S,
        max_incident_distance_m: float = config.MAX_INCIDENT_DISTANCE_M,
        rng: Optional[random.Random] = None,
        seed_incidents: Sequence[Incident] = (),
    ) -> None:
        self.simulator = simulator
        self.engine = engine
        self.feed = feed
        self.incident_tick_s = incident_tick_s
        self.max_incident_distance_m = max_incident_distance_m
        self.rng = rng or random.Random()
        self.seed_incidents = list(seed_incidents)
        self.engine.update_observer(self.simulator.position)

        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def position(self) -> Coordinates:
        return self.simulator.position

    def incidents(self, active_only: bool = False) -> List[Incident]:
        if active_only:
            return self.engine.active_incidents()
        return self.engine.incidents()

    def safety(self) -> SafetyAssessment:
        return assess_safety(self.engine.incidents())

    def observe(self, position: Coordinates) -> None:
        self.engine.update_observer(position)

    def step_movement(self) -> Coordinates:
        position = self.simulator.tick()
        self.engine.update_observer(position)
        return position

    async def refresh_incidents(self) -> List[Incident]:
        """Pull the external feed; seed simulated incidents when it has nothing and none are tracked."""
        fetched: List[Incident] = []
        if self.feed is not None:
            try:
                fetched = await self.feed.fetch(self.position)
            except ProviderUnavailable as exc:
                logger.warning("Event feed unavailable: %s", exc)

        nearby = [
            incident
            for incident in fetched
            if distance_m(self.position, incident.location) <= self.max_incident_distance_m
        ]
        if not nearby and len(self.engine) == 0:
            nearby = generate_incidents(self.position, rng=self.rng, now=self.engine.clock())
            logger.info("No external incidents, generated %d simulated ones", len(nearby))
        if self.seed_incidents:
            nearby = self.seed_incidents + nearby
            self.seed_incidents = []
        return self.engine.merge(nearby)

    async def _incident_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.incident_tick_s)
            except asyncio.TimeoutError:
                self.engine.tick()

    async def run(self, stop_event: asyncio.Event) -> None:
        try:
            await self.refresh_incidents()
        except Exception:
            logger.exception("Initial incident refresh failed, continuing without it")
        await asyncio.gather(
            self.simulator.run(stop_event, on_position=self.engine.update_observer),
            self._incident_loop(stop_event),
        )

    async def start(self) -> None:
        if self._tasks:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [asyncio.get_running_loop().create_task(self.run(self._stop_event))]
        logger.info("Simulation started at %s", self.position.to_list())

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks:
            try:
                await task
            except Exception:
                logger.exception("Simulation task failed")
        self._tasks = []
        await self.simulator.close()
        logger.info("Simulation stopped")


def build_default_system() -> SituationalAwarenessSystem:
    start = Coordinates(longitude=config.INITIAL_LONGITUDE, latitude=config.INITIAL_LATITUDE)
    simulator = MovementSimulator(
        start,
        profile=config.TRAVEL_PROFILE,
        route_service=RouteService(build_default_provider()),
        tick_interval_s=config.MOVEMENT_TICK_S,
    )
    return SituationalAwarenessSystem(
        simulator=simulator,
        engine=IncidentLifecycleEngine(),
        feed=build_default_feed(),
        seed_incidents=[fixed_incident(start)] if config.SEED_FIXED_INCIDENT else (),
    )

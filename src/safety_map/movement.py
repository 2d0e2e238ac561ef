"""
Movement simulator for the tracked agent.

The simulator owns the agent's position and route. ``tick()`` is synchronous
and never waits on the route provider: route requests are spawned as tasks on
the running event loop and land in the state when they resolve. At most one
request is in flight; a request whose context (travel profile or target) has
changed since it was issued is dropped when it completes.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from safety_map import config
from safety_map.errors import InvalidConfiguration
from safety_map.geodesy import distance_m, move_towards, random_destination
from safety_map.models import Coordinates, TravelProfile
from safety_map.routing import RouteService, StraightLineProvider

logger = logging.getLogger(__name__)

TARGET_ARRIVAL_M = 10.0
WAYPOINT_ARRIVAL_M = 5.0
RANDOM_DESTINATION_MIN_M = 400.0
RANDOM_DESTINATION_MAX_M = 800.0
FALLBACK_DESTINATION_M = 500.0


def parse_profile(profile: Union[str, TravelProfile]) -> TravelProfile:
    try:
        return TravelProfile(profile)
    except ValueError as exc:
        raise InvalidConfiguration(f"Unknown travel profile: {profile!r}") from exc


def _validate_positive(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise InvalidConfiguration(f"{name} must be a positive number, got {value!r}")
    return float(value)


@dataclass
class MovementState:
    position: Coordinates
    profile: TravelProfile
    speed_mps: float
    route: List[Coordinates] = field(default_factory=list)
    route_cursor: int = 0
    pending_target: Optional[Coordinates] = None
    destination: Optional[Coordinates] = None

    @property
    def has_active_route(self) -> bool:
        return self.route_cursor < len(self.route)

    def to_dict(self) -> dict:
        return {
            "position": self.position.to_list(),
            "profile": self.profile.value,
            "speed_mps": self.speed_mps,
            "route_length": len(self.route),
            "route_cursor": self.route_cursor,
            "pending_target": None if self.pending_target is None else self.pending_target.to_list(),
            "destination": None if self.destination is None else self.destination.to_list(),
        }


class MovementSimulator:
    def __init__(
        self,
        initial: Coordinates,
        speed: Optional[float] = None,
        profile: Union[str, TravelProfile] = TravelProfile.WALKING,
        route_service: Optional[RouteService] = None,
        tick_interval_s: float = config.MOVEMENT_TICK_S,
        rng: Optional[random.Random] = None,
    ) -> None:
        travel_profile = parse_profile(profile)
        speed_mps = travel_profile.default_speed if speed is None else _validate_positive("speed", speed)
        self.tick_interval_s = _validate_positive("tick_interval_s", tick_interval_s)
        self.route_service = route_service or RouteService(StraightLineProvider())
        self.rng = rng or random.Random()
        self.state = MovementState(position=initial, profile=travel_profile, speed_mps=speed_mps)
        self.tick_count = 0

        self._generation = 0
        self._route_task: Optional[asyncio.Task] = None

    @property
    def position(self) -> Coordinates:
        return self.state.position

    @property
    def route_in_flight(self) -> bool:
        return self._route_task is not None and not self._route_task.done()

    def snapshot(self) -> dict:
        data = self.state.to_dict()
        data["route_in_flight"] = self.route_in_flight
        data["tick_count"] = self.tick_count
        return data

    def set_target(self, target: Optional[Coordinates]) -> None:
        if target == self.state.pending_target:
            return
        self.state.pending_target = target
        self._invalidate_route_request()

    def set_profile(self, profile: Union[str, TravelProfile], speed: Optional[float] = None) -> None:
        travel_profile = parse_profile(profile)
        speed_mps = travel_profile.default_speed if speed is None else _validate_positive("speed", speed)
        self.state = MovementState(
            position=self.state.position,
            profile=travel_profile,
            speed_mps=speed_mps,
            pending_target=self.state.pending_target,
        )
        self._invalidate_route_request()

    def request_route(self, target: Optional[Coordinates] = None) -> bool:
        """Start a route request unless one is already in flight. Must be called on a running loop."""
        if self.route_in_flight:
            return False

        origin = self.state.position
        destination = target or random_destination(
            origin, self.rng, RANDOM_DESTINATION_MIN_M, RANDOM_DESTINATION_MAX_M
        )
        self.state.destination = destination
        loop = asyncio.get_running_loop()
        self._route_task = loop.create_task(
            self._fetch_route(origin, destination, self.state.profile, self._generation)
        )
        return True

    def tick(self) -> Coordinates:
        state = self.state
        step = state.speed_mps * self.tick_interval_s
        self.tick_count += 1

        if state.pending_target is not None:
            target = state.pending_target
            if distance_m(state.position, target) < TARGET_ARRIVAL_M:
                logger.info("Reached target %s", target.to_list())
                state.pending_target = None
                self._invalidate_route_request()
            elif not state.has_active_route:
                self.request_route(target)
                return self._advance(target, step)

        if state.has_active_route:
            if distance_m(state.position, state.route[state.route_cursor]) < WAYPOINT_ARRIVAL_M:
                state.route_cursor += 1
            if not state.has_active_route:
                self.request_route(state.pending_target)
                return state.position
            return self._advance(state.route[state.route_cursor], step)

        if state.destination is None:
            self.request_route(state.pending_target)
            return state.position

        if distance_m(state.position, state.destination) < TARGET_ARRIVAL_M:
            self.request_route(state.pending_target)
            return state.position
        return self._advance(state.destination, step)

    async def run(
        self,
        stop_event: asyncio.Event,
        on_position: Optional[Callable[[Coordinates], None]] = None,
    ) -> None:
        """Tick once per interval until ``stop_event`` is set."""
        self.request_route(self.state.pending_target)
        while not stop_event.is_set():
            position = self.tick()
            if on_position is not None:
                on_position(position)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.tick_interval_s)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        task = self._route_task
        self._invalidate_route_request()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _advance(self, goal: Coordinates, step: float) -> Coordinates:
        self.state.position = move_towards(self.state.position, goal, step)
        return self.state.position

    def _invalidate_route_request(self) -> None:
        self._generation += 1
        if self._route_task is not None and not self._route_task.done():
            self._route_task.cancel()
        self._route_task = None

    async def _fetch_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        profile: TravelProfile,
        generation: int,
    ) -> None:
        try:
            route = await self.route_service.get_route(origin, destination, profile)
        except Exception:
            logger.exception("Route request failed")
            route = []

        if generation != self._generation:
            logger.debug("Discarding stale route to %s", destination.to_list())
            return

        if not route:
            fallback = random_destination(
                self.state.position, self.rng, FALLBACK_DESTINATION_M, FALLBACK_DESTINATION_M
            )
            logger.info("No route available, heading for fallback destination %s", fallback.to_list())
            self.state.destination = fallback
            return

        # route[0] is where the agent stood when the request was issued
        self.state.route = list(route)
        self.state.route_cursor = 0
        logger.debug("New %s route with %d waypoints", profile.value, len(route))


def create_simulator(
    initial: Coordinates,
    speed: Optional[float] = None,
    profile: Union[str, TravelProfile] = TravelProfile.WALKING,
    **kwargs,
) -> MovementSimulator:
    return MovementSimulator(initial, speed=speed, profile=profile, **kwargs)

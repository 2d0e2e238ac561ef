import asyncio
import random

import pytest

from safety_map.errors import InvalidConfiguration, ProviderUnavailable
from safety_map.geodesy import destination_point, distance_m
from safety_map.models import Coordinates, TravelProfile
from safety_map.movement import FALLBACK_DESTINATION_M, MovementSimulator, create_simulator
from safety_map.routing import RouteService, StraightLineProvider

START = Coordinates(longitude=-122.4194, latitude=37.7749)


class FailingProvider:
    def __init__(self) -> None:
        self.calls = 0

    async def get_route(self, start, end, profile):
        self.calls += 1
        raise ProviderUnavailable("directions service offline")


class GatedProvider:
    """Holds every request until the test opens the gate."""

    def __init__(self) -> None:
        self.calls = 0
        self.gate = asyncio.Event()

    async def get_route(self, start, end, profile):
        self.calls += 1
        await self.gate.wait()
        return [start, end]


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _simulator(provider=None, **kwargs) -> MovementSimulator:
    service = RouteService(provider or StraightLineProvider(), timeout_s=1.0, **kwargs)
    return MovementSimulator(START, speed=1.5, route_service=service, tick_interval_s=1.0, rng=random.Random(3))


@pytest.mark.parametrize("speed", [0, -1.5])
def test_non_positive_speed_is_rejected(speed: float) -> None:
    with pytest.raises(InvalidConfiguration):
        create_simulator(START, speed=speed, profile="walking")


def test_unknown_profile_and_bad_tick_interval_are_rejected() -> None:
    with pytest.raises(InvalidConfiguration):
        create_simulator(START, profile="flying")
    with pytest.raises(InvalidConfiguration):
        create_simulator(START, speed=1.5, tick_interval_s=0)


def test_profile_default_speed_is_used() -> None:
    simulator = create_simulator(START, profile="driving")

    assert simulator.state.profile is TravelProfile.DRIVING
    assert simulator.state.speed_mps == 13.9


def test_failed_provider_falls_back_to_straight_line_and_reaches_target() -> None:
    async def scenario() -> int:
        provider = FailingProvider()
        simulator = _simulator(provider)
        target = destination_point(START, 90.0, 100.0)
        simulator.set_target(target)

        simulator.tick()
        await settle()
        route = simulator.state.route
        assert provider.calls == 1
        assert route == [START, target]

        for tick in range(2, 100):
            simulator.tick()
            if simulator.state.route is route and simulator.state.route_cursor == len(route):
                await simulator.close()
                return tick
            await settle()
        raise AssertionError("second waypoint never reached")

    reached = asyncio.run(scenario())
    assert abs(reached - 100 // 1.5) <= 1


def test_target_within_ten_metres_is_cleared_on_next_tick() -> None:
    async def scenario() -> None:
        simulator = _simulator()
        simulator.set_target(destination_point(START, 45.0, 8.0))

        position = simulator.tick()

        assert simulator.state.pending_target is None
        assert position == START
        await simulator.close()

    asyncio.run(scenario())


def test_moves_directly_toward_target_while_route_is_in_flight() -> None:
    async def scenario() -> None:
        provider = GatedProvider()
        simulator = _simulator(provider)
        target = destination_point(START, 180.0, 300.0)
        simulator.set_target(target)

        for _ in range(3):
            simulator.tick()
            await settle()

        assert provider.calls == 1
        assert simulator.route_in_flight
        assert distance_m(simulator.position, target) == pytest.approx(300.0 - 4.5, abs=0.05)
        await simulator.close()

    asyncio.run(scenario())


def test_route_requests_are_coalesced_while_one_is_in_flight() -> None:
    async def scenario() -> None:
        provider = GatedProvider()
        simulator = _simulator(provider)

        assert simulator.request_route() is True
        await settle()
        assert simulator.request_route() is False
        for _ in range(5):
            simulator.tick()
            await settle()

        assert provider.calls == 1
        provider.gate.set()
        await settle()
        assert not simulator.route_in_flight
        assert len(simulator.state.route) == 2
        await simulator.close()

    asyncio.run(scenario())


def test_clearing_target_discards_in_flight_route() -> None:
    async def scenario() -> None:
        provider = GatedProvider()
        simulator = _simulator(provider)
        simulator.set_target(destination_point(START, 0.0, 200.0))
        simulator.tick()
        await settle()
        assert simulator.route_in_flight

        simulator.set_target(None)
        provider.gate.set()
        await settle()

        assert simulator.state.route == []
        assert not simulator.route_in_flight
        await simulator.close()

    asyncio.run(scenario())


def test_route_for_reached_target_is_not_applied() -> None:
    async def scenario() -> None:
        provider = GatedProvider()
        simulator = _simulator(provider)
        target = destination_point(START, 90.0, 40.0)
        simulator.set_target(target)

        for _ in range(25):
            simulator.tick()
            await settle()
        assert simulator.state.pending_target is None
        arrived_at = simulator.position

        provider.gate.set()
        await settle()

        assert simulator.state.route[-1] != target
        assert simulator.state.route[0] == arrived_at
        assert provider.calls == 2
        await simulator.close()

    asyncio.run(scenario())


def test_profile_change_discards_in_flight_route() -> None:
    async def scenario() -> None:
        provider = GatedProvider()
        simulator = _simulator(provider)
        simulator.set_target(destination_point(START, 0.0, 300.0))
        simulator.tick()
        await settle()
        assert simulator.route_in_flight

        simulator.set_profile("driving")
        provider.gate.set()
        await settle()

        assert simulator.state.route == []
        assert simulator.state.route_cursor == 0
        assert not simulator.route_in_flight
        assert provider.calls == 1
        await simulator.close()

    asyncio.run(scenario())


def test_profile_change_resets_route_state_and_keeps_target() -> None:
    async def scenario() -> None:
        simulator = _simulator()
        target = destination_point(START, 270.0, 200.0)
        simulator.set_target(target)
        simulator.tick()
        await settle()
        assert simulator.state.route

        simulator.set_profile("driving")

        assert simulator.state.route == []
        assert simulator.state.route_cursor == 0
        assert simulator.state.destination is None
        assert simulator.state.speed_mps == 13.9
        assert simulator.state.pending_target == target
        await simulator.close()

    asyncio.run(scenario())


def test_empty_route_synthesizes_fallback_destination() -> None:
    async def scenario() -> None:
        simulator = _simulator(FailingProvider(), fallback_to_straight_line=False)

        assert simulator.tick() == START
        await settle()

        destination = simulator.state.destination
        assert simulator.state.route == []
        assert distance_m(START, destination) == pytest.approx(FALLBACK_DESTINATION_M, abs=1.0)

        moved = simulator.tick()
        assert distance_m(START, moved) == pytest.approx(1.5, abs=0.01)
        await simulator.close()

    asyncio.run(scenario())


def test_fast_profile_lands_on_waypoint_instead_of_overshooting() -> None:
    async def scenario() -> None:
        simulator = create_simulator(START, profile="driving", route_service=RouteService(StraightLineProvider()))
        waypoint = destination_point(START, 90.0, 8.0)
        simulator.state.route = [waypoint]

        assert simulator.tick() == waypoint
        assert simulator.tick() == waypoint
        assert simulator.state.route_cursor == 1
        assert simulator.route_in_flight
        await simulator.close()

    asyncio.run(scenario())


def test_route_cursor_never_exceeds_route_length() -> None:
    async def scenario() -> None:
        rng = random.Random(11)
        simulator = create_simulator(
            START, profile="walking", route_service=RouteService(StraightLineProvider()), rng=rng
        )
        for tick in range(400):
            if tick % 50 == 0:
                simulator.set_target(destination_point(simulator.position, rng.random() * 360, rng.random() * 60))
            if tick == 200:
                simulator.set_profile("driving")
            simulator.tick()
            assert simulator.state.route_cursor <= len(simulator.state.route)
            await settle()
        await simulator.close()

    asyncio.run(scenario())

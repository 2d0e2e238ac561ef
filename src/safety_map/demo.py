from __future__ import annotations

import asyncio
import random
from datetime import timedelta

from safety_map.generation import build_incident, fixed_incident
from safety_map.geodesy import destination_point
from safety_map.incidents import IncidentLifecycleEngine
from safety_map.models import Coordinates, IncidentCategory, Severity, utc_now
from safety_map.movement import MovementSimulator
from safety_map.routing import RouteService, StraightLineProvider
from safety_map.safety import assess_safety


async def walk(seconds: int = 120) -> None:
    rng = random.Random(7)
    start = Coordinates(longitude=-122.4194, latitude=37.7749)
    clock = [utc_now()]

    simulator = MovementSimulator(
        start,
        profile="walking",
        route_service=RouteService(StraightLineProvider()),
        rng=rng,
    )
    engine = IncidentLifecycleEngine(rng=rng, clock=lambda: clock[0])
    engine.merge(
        [
            fixed_incident(start, now=clock[0], offset_m=60.0),
            build_incident(
                IncidentCategory.TRAFFIC,
                Severity.MEDIUM,
                destination_point(start, 200.0, 400.0),
                created_at=clock[0] - timedelta(minutes=5),
                incident_id="traffic-1",
            ),
        ]
    )
    simulator.set_target(destination_point(start, 90.0, 120.0))

    print("=== Live Safety Map Walkthrough ===")
    for second in range(1, seconds + 1):
        position = simulator.tick()
        engine.update_observer(position)
        clock[0] += timedelta(seconds=1)
        if second % 30 == 0:
            for incident in engine.tick():
                print(f"[{second:>4}s] {incident.incident_id}: {incident.description}")
        # let pending route requests land
        await asyncio.sleep(0)

        if second % 15 == 0:
            assessment = assess_safety(engine.incidents())
            print(
                f"[{second:>4}s] at {position.longitude:.6f}, {position.latitude:.6f} -> "
                f"{assessment.message} ({assessment.detail})"
            )

    await simulator.close()


def main() -> None:
    asyncio.run(walk())


if __name__ == "__main__":
    main()

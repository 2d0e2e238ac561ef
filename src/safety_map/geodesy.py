"""Spherical-earth helpers. All distances are metres, bearings are degrees clockwise from north."""

from __future__ import annotations

import math
import random

from safety_map.models import Coordinates

EARTH_RADIUS_M = 6_371_000.0


def distance_m(origin: Coordinates, target: Coordinates) -> float:
    lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
    lat2, lon2 = math.radians(target.latitude), math.radians(target.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_M * c


def initial_bearing(origin: Coordinates, target: Coordinates) -> float:
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    dlon = math.radians(target.longitude - origin.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return math.degrees(math.atan2(y, x)) % 360.0


def destination_point(origin: Coordinates, bearing_deg: float, distance: float) -> Coordinates:
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)
    brng = math.radians(bearing_deg)
    delta = distance / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(brng)
    )
    lon2 = lon1 + math.atan2(
        math.sin(brng) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    # normalise to [-180, 180)
    lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return Coordinates(longitude=lon_deg, latitude=math.degrees(lat2))


def move_towards(origin: Coordinates, target: Coordinates, step_m: float) -> Coordinates:
    """Step along the initial bearing to ``target``; never past it."""
    remaining = distance_m(origin, target)
    if remaining <= step_m:
        return target
    return destination_point(origin, initial_bearing(origin, target), step_m)


def random_destination(origin: Coordinates, rng: random.Random, min_m: float, max_m: float) -> Coordinates:
    bearing = rng.random() * 360.0
    distance = min_m + rng.random() * (max_m - min_m)
    return destination_point(origin, bearing, distance)

"""Geometry helpers for the 2-D town map.

Agents walk in straight lines between location centres; there is no
pathfinding or collision. All helpers are pure functions over ``Position``
and ``Location`` values.
"""

from __future__ import annotations

import math
import random
from typing import Iterable, Optional

from .schemas import Location, Position


def distance(a: Position, b: Position) -> float:
    """Euclidean distance between two positions."""
    return math.hypot(a.x - b.x, a.y - b.y)


def location_center(location: Location) -> Position:
    return Position(x=location.x + location.width / 2, y=location.y + location.height / 2)


def contains(location: Location, position: Position) -> bool:
    """True when the position lies inside the rectangle (edges inclusive)."""
    return (
        location.x <= position.x <= location.x + location.width
        and location.y <= position.y <= location.y + location.height
    )


def location_at(locations: Iterable[Location], position: Position) -> Optional[Location]:
    """Return the first location whose rectangle contains the position."""
    for location in locations:
        if contains(location, position):
            return location
    return None


def find_location(locations: Iterable[Location], name_or_id: str) -> Optional[Location]:
    """Resolve a location by display name or id.

    Generated plans refer to locations by name ("Town Square"), while
    bookkeeping uses ids ("square"); both are accepted.
    """
    for location in locations:
        if location.name == name_or_id or location.id == name_or_id:
            return location
    return None


def move_toward(current: Position, target: Position, step: float) -> Position:
    """Advance ``current`` toward ``target`` by at most ``step`` units.

    Snaps onto the target when it is closer than one step, so agents never
    overshoot or oscillate around a destination.
    """
    dx = target.x - current.x
    dy = target.y - current.y
    dist = math.hypot(dx, dy)

    if dist < step:
        return Position(x=target.x, y=target.y)

    return Position(x=current.x + dx / dist * step, y=current.y + dy / dist * step)


def is_at_location(position: Position, location: Location, threshold: float = 10.0) -> bool:
    """True when the position is within ``threshold`` units of the location centre."""
    return distance(position, location_center(location)) < threshold


def random_position_in(location: Location, rng: Optional[random.Random] = None) -> Position:
    rng = rng or random.Random()
    return Position(
        x=location.x + rng.random() * location.width,
        y=location.y + rng.random() * location.height,
    )

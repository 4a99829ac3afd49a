"""Town geometry for Townsfolk."""

from .schemas import Location, LocationKind, Position
from .helpers import (
    contains,
    distance,
    find_location,
    is_at_location,
    location_at,
    location_center,
    move_toward,
    random_position_in,
)

__all__ = [
    "Location",
    "LocationKind",
    "Position",
    "contains",
    "distance",
    "find_location",
    "is_at_location",
    "location_at",
    "location_center",
    "move_toward",
    "random_position_in",
]

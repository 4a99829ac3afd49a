"""Pydantic schemas for the town's static geometry.

Locations are axis-aligned rectangles in world units (the bundled town map
is 800x600). They are supplied once at startup and never mutated by the
simulation core.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LocationKind(str, Enum):
    BUILDING = "building"
    OUTDOOR = "outdoor"
    PATH = "path"


class Position(BaseModel):
    """A point in world coordinates."""

    x: float = 0.0
    y: float = 0.0


class Location(BaseModel):
    """A named rectangle on the town map."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    x: float
    y: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)
    kind: LocationKind = LocationKind.BUILDING

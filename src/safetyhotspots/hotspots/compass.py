from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class CompassDirection:
    index: int
    name: str
    short_name: str
    angle_deg: float


_DIRECTIONS: Tuple[CompassDirection, ...] = (
    CompassDirection(0, "North", "N", 0.0),
    CompassDirection(1, "Northeast", "NE", 45.0),
    CompassDirection(2, "East", "E", 90.0),
    CompassDirection(3, "Southeast", "SE", 135.0),
    CompassDirection(4, "South", "S", 180.0),
    CompassDirection(5, "Southwest", "SW", 225.0),
    CompassDirection(6, "West", "W", 270.0),
    CompassDirection(7, "Northwest", "NW", 315.0),
)


def normalize_heading_deg(heading: float) -> float:
    h = float(heading) % 360.0
    return 0.0 if h >= 360.0 else h


def compass_octant(heading_deg: float) -> int:
    # round half up, so 22.5 belongs to NE
    return int(math.floor(normalize_heading_deg(heading_deg) / 45.0 + 0.5)) % 8


def compass_direction(heading_deg: float) -> CompassDirection:
    return _DIRECTIONS[compass_octant(heading_deg)]


def direction_by_index(index: int) -> CompassDirection:
    return _DIRECTIONS[int(index) % 8]

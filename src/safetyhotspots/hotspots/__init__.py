from .collection import CollectionStats, EventCollection
from .compass import CompassDirection, compass_direction, compass_octant
from .grid import (
    GridCell,
    GridConfig,
    GridKey,
    aggregate_disengagements,
    aggregate_events,
    aggregate_incidents,
    grid_key,
    heat_points,
)

__all__ = [
    "CollectionStats",
    "CompassDirection",
    "EventCollection",
    "GridCell",
    "GridConfig",
    "GridKey",
    "aggregate_disengagements",
    "aggregate_events",
    "aggregate_incidents",
    "compass_direction",
    "compass_octant",
    "grid_key",
    "heat_points",
]

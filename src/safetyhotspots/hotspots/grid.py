from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from safetyhotspots.hotspots.compass import CompassDirection, compass_octant, direction_by_index
from safetyhotspots.utils.types import (
    DEFAULT_SEVERITY_WEIGHTS,
    DetectedEvent,
    DisengagementEvent,
    IncidentEvent,
    PositionSample,
    Severity,
    is_gps_valid,
)

DEFAULT_GRID_QUANTUM_DEG = 0.001


@dataclass(frozen=True)
class GridConfig:
    quantum_deg: float = DEFAULT_GRID_QUANTUM_DEG
    min_intensity: float = 0.3
    weight_critical: float = DEFAULT_SEVERITY_WEIGHTS[Severity.CRITICAL]
    weight_warning: float = DEFAULT_SEVERITY_WEIGHTS[Severity.WARNING]
    weight_info: float = DEFAULT_SEVERITY_WEIGHTS[Severity.INFO]

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "GridConfig":
        weights = dict(d.get("severity_weights", {}) or {})
        quantum = float(d.get("quantum_deg", DEFAULT_GRID_QUANTUM_DEG))
        if quantum <= 0.0:
            raise ValueError("grid.quantum_deg must be > 0")
        return GridConfig(
            quantum_deg=quantum,
            min_intensity=float(d.get("min_intensity", 0.3)),
            weight_critical=float(weights.get("critical", DEFAULT_SEVERITY_WEIGHTS[Severity.CRITICAL])),
            weight_warning=float(weights.get("warning", DEFAULT_SEVERITY_WEIGHTS[Severity.WARNING])),
            weight_info=float(weights.get("info", DEFAULT_SEVERITY_WEIGHTS[Severity.INFO])),
        )

    def severity_weight(self, severity: Severity) -> float:
        if severity is Severity.CRITICAL:
            return self.weight_critical
        if severity is Severity.WARNING:
            return self.weight_warning
        return self.weight_info


class GridKey(NamedTuple):
    lat_index: int
    lon_index: int
    direction: Optional[int] = None


def grid_index(value_deg: float, quantum_deg: float = DEFAULT_GRID_QUANTUM_DEG) -> int:
    return int(math.floor(float(value_deg) / float(quantum_deg) + 0.5))


def grid_key(lat: float, lon: float, quantum_deg: float = DEFAULT_GRID_QUANTUM_DEG, heading_deg: Optional[float] = None) -> GridKey:
    direction = None if heading_deg is None else compass_octant(heading_deg)
    return GridKey(grid_index(lat, quantum_deg), grid_index(lon, quantum_deg), direction)


def event_key(e: DetectedEvent, quantum_deg: float = DEFAULT_GRID_QUANTUM_DEG) -> GridKey:
    if isinstance(e, DisengagementEvent):
        return grid_key(e.lat, e.lon, quantum_deg, heading_deg=e.heading_deg)
    return grid_key(e.lat, e.lon, quantum_deg)


@dataclass
class GridCell:
    key: GridKey
    grid_lat: float
    grid_lon: float
    count: int = 0
    weighted_count: float = 0.0
    intensity: float = 0.0
    members: List[DetectedEvent] = field(default_factory=list)
    severity_histogram: Dict[Severity, int] = field(default_factory=dict)
    mode_breakdown: Dict[str, int] = field(default_factory=dict)

    @property
    def direction(self) -> Optional[CompassDirection]:
        if self.key.direction is None:
            return None
        return direction_by_index(self.key.direction)

    @property
    def dominant_severity(self) -> Optional[Severity]:
        present = [s for s, n in self.severity_histogram.items() if n > 0]
        if not present:
            return None
        return max(present, key=lambda s: s.rank)


def _new_cell(key: GridKey, quantum_deg: float, with_histogram: bool) -> GridCell:
    cell = GridCell(key=key, grid_lat=key.lat_index * quantum_deg, grid_lon=key.lon_index * quantum_deg)
    if with_histogram:
        cell.severity_histogram = {Severity.CRITICAL: 0, Severity.WARNING: 0, Severity.INFO: 0}
    return cell


def normalize_intensity(cells: Iterable[GridCell], min_intensity: float = 0.3) -> None:
    """Scale ``weighted_count`` into ``[min_intensity, 1.0]`` against the heaviest cell.

    The divisor never drops below 1.0, so a set made only of light cells
    stays near the floor instead of being stretched to full intensity.
    """
    cells = list(cells)
    if not cells:
        return
    top = max(1.0, max(c.weighted_count for c in cells))
    for c in cells:
        c.intensity = min(1.0, max(float(min_intensity), c.weighted_count / top))


def aggregate_incidents(events: Sequence[IncidentEvent], cfg: GridConfig = GridConfig()) -> List[GridCell]:
    cells: Dict[GridKey, GridCell] = {}
    for e in events:
        if not is_gps_valid(e.lat, e.lon):
            continue
        key = event_key(e, cfg.quantum_deg)
        cell = cells.get(key)
        if cell is None:
            cell = _new_cell(key, cfg.quantum_deg, with_histogram=True)
            cells[key] = cell
        cell.count += 1
        cell.weighted_count += cfg.severity_weight(e.severity)
        cell.members.append(e)
        cell.severity_histogram[e.severity] = cell.severity_histogram.get(e.severity, 0) + 1
        mode = e.autopilot_mode.name
        cell.mode_breakdown[mode] = cell.mode_breakdown.get(mode, 0) + 1
    out = list(cells.values())
    normalize_intensity(out, cfg.min_intensity)
    return out


def aggregate_disengagements(events: Sequence[DisengagementEvent], cfg: GridConfig = GridConfig()) -> List[GridCell]:
    cells: Dict[GridKey, GridCell] = {}
    for e in events:
        if not is_gps_valid(e.lat, e.lon):
            continue
        key = event_key(e, cfg.quantum_deg)
        cell = cells.get(key)
        if cell is None:
            cell = _new_cell(key, cfg.quantum_deg, with_histogram=False)
            cells[key] = cell
        cell.count += 1
        cell.weighted_count += 1.0
        cell.members.append(e)
        mode = e.from_mode.name
        cell.mode_breakdown[mode] = cell.mode_breakdown.get(mode, 0) + 1
    out = list(cells.values())
    normalize_intensity(out, cfg.min_intensity)
    return out


def aggregate_events(events: Iterable[DetectedEvent], cfg: GridConfig = GridConfig()) -> Tuple[List[GridCell], List[GridCell]]:
    """Split a mixed event list and return ``(incident_cells, disengagement_cells)``."""
    incidents: List[IncidentEvent] = []
    disengagements: List[DisengagementEvent] = []
    for e in events:
        if isinstance(e, IncidentEvent):
            incidents.append(e)
        elif isinstance(e, DisengagementEvent):
            disengagements.append(e)
    return aggregate_incidents(incidents, cfg), aggregate_disengagements(disengagements, cfg)


def heat_points(cells: Iterable[GridCell]) -> List[Tuple[float, float, float]]:
    return [(c.grid_lat, c.grid_lon, c.intensity) for c in cells]


def position_heat_points(points: Iterable[PositionSample]) -> List[Tuple[float, float, float]]:
    return [(p.lat, p.lon, p.weight) for p in points]

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from safetyhotspots.cache.codec import event_to_dict
from safetyhotspots.hotspots.grid import GridCell, heat_points, position_heat_points
from safetyhotspots.utils.types import DetectedEvent, PositionSample, Severity


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class ScanSnapshot:
    events: List[DetectedEvent] = field(default_factory=list)
    incident_cells: List[GridCell] = field(default_factory=list)
    disengagement_cells: List[GridCell] = field(default_factory=list)
    positions: List[PositionSample] = field(default_factory=list)


class ResultSink(Protocol):
    def publish(self, snapshot: ScanSnapshot) -> None:
        ...


@dataclass
class JsonlEventSink(ResultSink):
    path: str

    def publish(self, snapshot: ScanSnapshot) -> None:
        _ensure_parent(self.path)
        with open(self.path, "w", encoding="utf-8") as f:
            for e in snapshot.events:
                f.write(json.dumps(event_to_dict(e), ensure_ascii=False) + "\n")


CELL_FIELDS = [
    "kind",
    "grid_lat",
    "grid_lon",
    "direction",
    "count",
    "weighted_count",
    "intensity",
    "critical",
    "warning",
    "info",
    "modes",
]


def cell_row(kind: str, c: GridCell) -> Dict[str, Any]:
    direction = c.direction
    return {
        "kind": kind,
        "grid_lat": round(c.grid_lat, 6),
        "grid_lon": round(c.grid_lon, 6),
        "direction": direction.short_name if direction is not None else "",
        "count": c.count,
        "weighted_count": round(c.weighted_count, 4),
        "intensity": round(c.intensity, 4),
        "critical": c.severity_histogram.get(Severity.CRITICAL, 0),
        "warning": c.severity_histogram.get(Severity.WARNING, 0),
        "info": c.severity_histogram.get(Severity.INFO, 0),
        "modes": ";".join(f"{k}={v}" for k, v in sorted(c.mode_breakdown.items())),
    }


@dataclass
class CsvCellSink(ResultSink):
    path: str

    def publish(self, snapshot: ScanSnapshot) -> None:
        _ensure_parent(self.path)
        with open(self.path, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=CELL_FIELDS)
            w.writeheader()
            for c in snapshot.incident_cells:
                w.writerow(cell_row("incident", c))
            for c in snapshot.disengagement_cells:
                w.writerow(cell_row("disengagement", c))


@dataclass
class HeatmapJsonSink(ResultSink):
    """Heat layers as ``[lat, lon, intensity]`` triples, one list per layer."""

    path: str

    def publish(self, snapshot: ScanSnapshot) -> None:
        _ensure_parent(self.path)
        doc = {
            "incidents": [list(p) for p in heat_points(snapshot.incident_cells)],
            "disengagements": [list(p) for p in heat_points(snapshot.disengagement_cells)],
            "positions": [list(p) for p in position_heat_points(snapshot.positions)],
        }
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(doc, f)


@dataclass
class ResultSinks(ResultSink):
    events: Optional[JsonlEventSink] = None
    cells: Optional[CsvCellSink] = None
    heatmap: Optional[HeatmapJsonSink] = None

    def publish(self, snapshot: ScanSnapshot) -> None:
        if self.events is not None:
            self.events.publish(snapshot)
        if self.cells is not None:
            self.cells.publish(snapshot)
        if self.heatmap is not None:
            self.heatmap.publish(snapshot)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from safetyhotspots.hotspots.grid import GridCell, GridConfig, aggregate_events
from safetyhotspots.utils.types import DetectedEvent, DisengagementEvent, IncidentEvent


@dataclass(frozen=True)
class CollectionStats:
    total: int
    incidents: int
    disengagements: int
    by_severity: Dict[str, int]
    by_from_mode: Dict[str, int]
    by_autopilot_mode: Dict[str, int]


@dataclass
class EventCollection:
    """Detected events grouped by the source event that produced them.

    Results for a source are always swapped in as a whole, so a rescan of an
    event never leaves stale items next to fresh ones.
    """

    _by_source: Dict[str, List[DetectedEvent]] = field(default_factory=dict)

    def replace_source(self, source_event_id: str, events: Iterable[DetectedEvent]) -> None:
        items = list(events)
        for e in items:
            if e.source_event_id != source_event_id:
                raise ValueError(f"Event from source {e.source_event_id!r} passed for {source_event_id!r}")
        self._by_source.pop(source_event_id, None)
        self._by_source[source_event_id] = items

    def remove_source(self, source_event_id: str) -> None:
        self._by_source.pop(source_event_id, None)

    def clear(self) -> None:
        self._by_source.clear()

    def sources(self) -> List[str]:
        return list(self._by_source.keys())

    def has_source(self, source_event_id: str) -> bool:
        return source_event_id in self._by_source

    def for_source(self, source_event_id: str) -> List[DetectedEvent]:
        return list(self._by_source.get(source_event_id, []))

    def all(self) -> List[DetectedEvent]:
        out: List[DetectedEvent] = []
        for items in self._by_source.values():
            out.extend(items)
        return out

    def incidents(self) -> List[IncidentEvent]:
        return [e for e in self.all() if isinstance(e, IncidentEvent)]

    def disengagements(self) -> List[DisengagementEvent]:
        return [e for e in self.all() if isinstance(e, DisengagementEvent)]

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_source.values())

    def cells(self, cfg: GridConfig = GridConfig()) -> Tuple[List[GridCell], List[GridCell]]:
        return aggregate_events(self.all(), cfg)

    def stats(self) -> CollectionStats:
        by_severity: Dict[str, int] = {}
        by_from_mode: Dict[str, int] = {}
        by_autopilot_mode: Dict[str, int] = {}
        incidents = 0
        disengagements = 0
        for e in self.all():
            if isinstance(e, IncidentEvent):
                incidents += 1
                by_severity[e.severity.value] = by_severity.get(e.severity.value, 0) + 1
                by_autopilot_mode[e.autopilot_mode.name] = by_autopilot_mode.get(e.autopilot_mode.name, 0) + 1
            else:
                disengagements += 1
                by_from_mode[e.from_mode.name] = by_from_mode.get(e.from_mode.name, 0) + 1
        return CollectionStats(
            total=incidents + disengagements,
            incidents=incidents,
            disengagements=disengagements,
            by_severity=by_severity,
            by_from_mode=by_from_mode,
            by_autopilot_mode=by_autopilot_mode,
        )

from __future__ import annotations

from typing import List, Protocol, Sequence

from safetyhotspots.utils.types import DetectedEvent, TelemetrySample


class EventDetector(Protocol):
    kind: str

    def detect(self, samples: Sequence[TelemetrySample], source_event_id: str) -> List[DetectedEvent]:
        ...

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from safetyhotspots.utils.types import AutopilotMode, DisengagementEvent, TelemetrySample


logger = logging.getLogger("safetyhotspots.detection.disengagements")


class DisengagementDetector:
    """Emit a point event on every active -> NONE autopilot transition.

    Runs on the full per-frame stream. There is no cooldown; the previous
    mode is tracked on every frame, including frames without a usable fix.
    """

    kind = "disengagement"

    def detect(self, samples: Sequence[TelemetrySample], source_event_id: str) -> List[DisengagementEvent]:
        events: List[DisengagementEvent] = []
        previous: Optional[AutopilotMode] = None
        for s in samples:
            current = s.autopilot_mode
            if previous is not None and previous.active and current == AutopilotMode.NONE and s.gps_valid:
                events.append(
                    DisengagementEvent(
                        time_s=float(s.time_s),
                        lat=float(s.latitude),
                        lon=float(s.longitude),
                        from_mode=previous,
                        speed_mph=float(s.speed_mph),
                        heading_deg=float(s.heading_deg),
                        source_event_id=str(source_event_id),
                        to_mode=AutopilotMode.NONE,
                        clip_index=int(s.clip_index),
                        frame_index=int(s.frame_index),
                    )
                )
            previous = current
        if events:
            logger.debug("disengagements detected: source=%s total=%d", source_event_id, len(events))
        return events

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Union

GPS_MIN_ABS_DEG = 0.001


class AutopilotMode(IntEnum):
    NONE = 0
    FSD = 1
    AUTOSTEER = 2
    TACC = 3

    @property
    def active(self) -> bool:
        return self is not AutopilotMode.NONE

    @staticmethod
    def parse(value: object) -> "AutopilotMode":
        if isinstance(value, AutopilotMode):
            return value
        if value is None or value == "":
            return AutopilotMode.NONE
        if isinstance(value, (int, float)) or str(value).strip().isdigit():
            try:
                return AutopilotMode(int(value))  # type: ignore[arg-type]
            except ValueError:
                return AutopilotMode.NONE
        try:
            return AutopilotMode[str(value).strip().upper()]
        except KeyError:
            return AutopilotMode.NONE


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}

DEFAULT_SEVERITY_WEIGHTS: Dict[Severity, float] = {
    Severity.CRITICAL: 1.0,
    Severity.WARNING: 0.6,
    Severity.INFO: 0.3,
}


def is_gps_valid(lat: float, lon: float) -> bool:
    return abs(float(lat)) > GPS_MIN_ABS_DEG and abs(float(lon)) > GPS_MIN_ABS_DEG


@dataclass(frozen=True)
class TelemetrySample:
    time_s: float
    speed_mph: float
    g_lat: float
    g_long: float
    brake_applied: bool
    autopilot_mode: AutopilotMode
    latitude: float
    longitude: float
    heading_deg: float
    clip_index: int = 0
    frame_index: int = 0

    @property
    def gps_valid(self) -> bool:
        return is_gps_valid(self.latitude, self.longitude)


@dataclass(frozen=True)
class IncidentEvent:
    time_s: float
    lat: float
    lon: float
    severity: Severity
    max_decel_g: float
    avg_decel_g: float
    speed_drop_mph: float
    speed_at_window_start_mph: float
    autopilot_mode: AutopilotMode
    source_event_id: str
    heading_deg: float = 0.0
    clip_index: int = 0
    frame_index: int = 0

    kind = "incident"


@dataclass(frozen=True)
class DisengagementEvent:
    time_s: float
    lat: float
    lon: float
    from_mode: AutopilotMode
    speed_mph: float
    heading_deg: float
    source_event_id: str
    to_mode: AutopilotMode = AutopilotMode.NONE
    clip_index: int = 0
    frame_index: int = 0

    kind = "disengagement"


DetectedEvent = Union[IncidentEvent, DisengagementEvent]


@dataclass(frozen=True)
class PositionSample:
    lat: float
    lon: float
    weight: float = 1.0


@dataclass(frozen=True)
class ScanEvent:
    """One recorded event as supplied by the host: an id plus its ordered clip references."""

    event_id: str
    clips: List[str]
    clip_durations_s: Optional[List[Optional[float]]] = None
    timestamp: Optional[str] = None
    event_type: Optional[str] = None

    def clip_duration_s(self, clip_index: int) -> Optional[float]:
        if self.clip_durations_s is None or clip_index >= len(self.clip_durations_s):
            return None
        d = self.clip_durations_s[clip_index]
        return None if d is None else float(d)


@dataclass(frozen=True)
class ClipFrames:
    samples: List[TelemetrySample] = field(default_factory=list)
    duration_s: Optional[float] = None

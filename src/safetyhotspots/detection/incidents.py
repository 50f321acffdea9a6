from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from safetyhotspots.utils.types import AutopilotMode, IncidentEvent, Severity, TelemetrySample


logger = logging.getLogger("safetyhotspots.detection.incidents")


@dataclass(frozen=True)
class SeverityThresholds:
    critical_speed_drop_mph: float = 20.0
    critical_decel_g: float = 0.5
    warning_speed_drop_mph: float = 12.0
    warning_decel_g: float = 0.35


@dataclass(frozen=True)
class IncidentDetectorConfig:
    min_decel_g: float = 0.20
    min_speed_drop_mph: float = 8.0
    min_speed_mph: float = 20.0
    cooldown_s: float = 5.0
    window_s: float = 1.5
    peak_decel_factor: float = 1.5
    severity: SeverityThresholds = SeverityThresholds()

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "IncidentDetectorConfig":
        sev = dict(d.get("severity", {}) or {})
        return IncidentDetectorConfig(
            min_decel_g=float(d.get("min_decel_g", 0.20)),
            min_speed_drop_mph=float(d.get("min_speed_drop_mph", 8.0)),
            min_speed_mph=float(d.get("min_speed_mph", 20.0)),
            cooldown_s=float(d.get("cooldown_s", 5.0)),
            window_s=float(d.get("window_s", 1.5)),
            peak_decel_factor=float(d.get("peak_decel_factor", 1.5)),
            severity=SeverityThresholds(
                critical_speed_drop_mph=float(sev.get("critical_speed_drop_mph", 20.0)),
                critical_decel_g=float(sev.get("critical_decel_g", 0.5)),
                warning_speed_drop_mph=float(sev.get("warning_speed_drop_mph", 12.0)),
                warning_decel_g=float(sev.get("warning_decel_g", 0.35)),
            ),
        )


def classify_severity(speed_drop_mph: float, max_decel_g: float, thresholds: SeverityThresholds = SeverityThresholds()) -> Severity:
    if speed_drop_mph >= thresholds.critical_speed_drop_mph or max_decel_g >= thresholds.critical_decel_g:
        return Severity.CRITICAL
    if speed_drop_mph >= thresholds.warning_speed_drop_mph or max_decel_g >= thresholds.warning_decel_g:
        return Severity.WARNING
    return Severity.INFO


def window_start_index(samples: Sequence[TelemetrySample], i: int, window_s: float) -> int:
    t = float(samples[i].time_s)
    for j in range(i, -1, -1):
        if t - float(samples[j].time_s) >= window_s:
            return j
    return i


def decel_stats(samples: Sequence[TelemetrySample], start: int, end: int) -> Tuple[float, float]:
    """Peak and mean of the positive ``g_long`` values in ``samples[start:end + 1]``."""
    g = np.asarray([s.g_long for s in samples[start : end + 1]], dtype=np.float64)
    braking = g[g > 0.0]
    if braking.size == 0:
        return 0.0, 0.0
    return float(braking.max()), float(braking.mean())


class IncidentDetector:
    """Windowed harsh-braking detector for automated-driving segments.

    The automated-driving and brake gate is evaluated on the sample at the
    start of the window rather than the triggering sample, so a driver who
    takes over or brakes in reaction to the slowdown does not mask it.
    """

    kind = "incident"

    def __init__(self, cfg: IncidentDetectorConfig = IncidentDetectorConfig()) -> None:
        self._cfg = cfg

    @property
    def config(self) -> IncidentDetectorConfig:
        return self._cfg

    def detect(self, samples: Sequence[TelemetrySample], source_event_id: str) -> List[IncidentEvent]:
        cfg = self._cfg
        events: List[IncidentEvent] = []
        last_incident_t = float("-inf")

        for i in range(1, len(samples)):
            p = samples[i]
            if float(p.time_s) - last_incident_t < cfg.cooldown_s:
                continue
            if not p.gps_valid:
                continue

            j = window_start_index(samples, i, cfg.window_s)
            start = samples[j]
            if start.autopilot_mode == AutopilotMode.NONE or start.brake_applied:
                continue
            if float(start.speed_mph) < cfg.min_speed_mph:
                continue

            speed_drop = float(start.speed_mph) - float(p.speed_mph)
            max_decel, avg_decel = decel_stats(samples, j, i)
            strong_decel = avg_decel >= cfg.min_decel_g or max_decel >= cfg.peak_decel_factor * cfg.min_decel_g
            if speed_drop < cfg.min_speed_drop_mph or not strong_decel:
                continue

            events.append(
                IncidentEvent(
                    time_s=float(p.time_s),
                    lat=float(p.latitude),
                    lon=float(p.longitude),
                    severity=classify_severity(speed_drop, max_decel, cfg.severity),
                    max_decel_g=max_decel,
                    avg_decel_g=avg_decel,
                    speed_drop_mph=speed_drop,
                    speed_at_window_start_mph=float(start.speed_mph),
                    autopilot_mode=start.autopilot_mode,
                    source_event_id=str(source_event_id),
                    heading_deg=float(p.heading_deg),
                    clip_index=int(p.clip_index),
                    frame_index=int(p.frame_index),
                )
            )
            last_incident_t = float(p.time_s)

        if events and logger.isEnabledFor(logging.DEBUG):
            critical = sum(1 for e in events if e.severity is Severity.CRITICAL)
            warning = sum(1 for e in events if e.severity is Severity.WARNING)
            logger.debug(
                "incidents detected: source=%s total=%d critical=%d warning=%d",
                source_event_id,
                len(events),
                critical,
                warning,
            )
        return events

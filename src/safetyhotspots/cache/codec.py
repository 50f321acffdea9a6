from __future__ import annotations

from typing import Any, Dict, List, Mapping

from safetyhotspots.utils.types import (
    AutopilotMode,
    DetectedEvent,
    DisengagementEvent,
    IncidentEvent,
    PositionSample,
    Severity,
)


def event_to_dict(e: DetectedEvent) -> Dict[str, Any]:
    if isinstance(e, IncidentEvent):
        return {
            "type": "incident",
            "time_s": e.time_s,
            "lat": e.lat,
            "lon": e.lon,
            "severity": e.severity.value,
            "max_decel_g": e.max_decel_g,
            "avg_decel_g": e.avg_decel_g,
            "speed_drop_mph": e.speed_drop_mph,
            "speed_at_window_start_mph": e.speed_at_window_start_mph,
            "autopilot_mode": e.autopilot_mode.name,
            "source_event_id": e.source_event_id,
            "heading_deg": e.heading_deg,
            "clip_index": e.clip_index,
            "frame_index": e.frame_index,
        }
    if isinstance(e, DisengagementEvent):
        return {
            "type": "disengagement",
            "time_s": e.time_s,
            "lat": e.lat,
            "lon": e.lon,
            "from_mode": e.from_mode.name,
            "to_mode": e.to_mode.name,
            "speed_mph": e.speed_mph,
            "heading_deg": e.heading_deg,
            "source_event_id": e.source_event_id,
            "clip_index": e.clip_index,
            "frame_index": e.frame_index,
        }
    raise TypeError(f"Unsupported event type: {type(e).__name__}")


def event_from_dict(d: Mapping[str, Any]) -> DetectedEvent:
    t = d["type"]
    if t == "incident":
        return IncidentEvent(
            time_s=float(d["time_s"]),
            lat=float(d["lat"]),
            lon=float(d["lon"]),
            severity=Severity(d["severity"]),
            max_decel_g=float(d["max_decel_g"]),
            avg_decel_g=float(d["avg_decel_g"]),
            speed_drop_mph=float(d["speed_drop_mph"]),
            speed_at_window_start_mph=float(d["speed_at_window_start_mph"]),
            autopilot_mode=AutopilotMode[d["autopilot_mode"]],
            source_event_id=str(d["source_event_id"]),
            heading_deg=float(d.get("heading_deg", 0.0)),
            clip_index=int(d.get("clip_index", 0)),
            frame_index=int(d.get("frame_index", 0)),
        )
    if t == "disengagement":
        return DisengagementEvent(
            time_s=float(d["time_s"]),
            lat=float(d["lat"]),
            lon=float(d["lon"]),
            from_mode=AutopilotMode[d["from_mode"]],
            speed_mph=float(d["speed_mph"]),
            heading_deg=float(d["heading_deg"]),
            source_event_id=str(d["source_event_id"]),
            to_mode=AutopilotMode[d.get("to_mode", "NONE")],
            clip_index=int(d.get("clip_index", 0)),
            frame_index=int(d.get("frame_index", 0)),
        )
    raise ValueError(f"Unknown event type in cache payload: {t!r}")


def position_to_list(p: PositionSample) -> List[float]:
    return [p.lat, p.lon, p.weight]


def position_from_list(v: Any) -> PositionSample:
    if not isinstance(v, (list, tuple)) or len(v) < 2:
        raise ValueError(f"Malformed position record: {v!r}")
    weight = float(v[2]) if len(v) > 2 else 1.0
    return PositionSample(lat=float(v[0]), lon=float(v[1]), weight=weight)

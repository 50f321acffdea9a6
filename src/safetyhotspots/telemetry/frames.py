from __future__ import annotations

from typing import Any, Dict, Mapping

from safetyhotspots.utils.types import AutopilotMode, TelemetrySample

MPS_TO_MPH = 2.2369362920544
KPH_TO_MPH = MPS_TO_MPH / 3.6


def _num(frame: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    v = frame.get(key)
    if v is None or v == "":
        return float(default)
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _flag(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on"}
    return bool(v)


def speed_mph_from_frame(frame: Mapping[str, Any]) -> float:
    if frame.get("speed_mph") not in (None, ""):
        return _num(frame, "speed_mph")
    if frame.get("vehicle_speed_mps") not in (None, ""):
        return _num(frame, "vehicle_speed_mps") * MPS_TO_MPH
    if frame.get("speed_kph") not in (None, ""):
        return _num(frame, "speed_kph") * KPH_TO_MPH
    return 0.0


def sample_from_frame(frame: Mapping[str, Any], time_s: float) -> TelemetrySample:
    """Map one extractor frame record onto a TelemetrySample.

    The extractor reports longitudinal g with negative values for braking,
    while samples carry deceleration as positive ``g_long``.
    """
    mode_raw = frame.get("autopilot_state", frame.get("autopilot_name"))
    return TelemetrySample(
        time_s=float(time_s),
        speed_mph=speed_mph_from_frame(frame),
        g_lat=_num(frame, "g_force_x"),
        g_long=-_num(frame, "g_force_y"),
        brake_applied=_flag(frame.get("brake_applied", frame.get("brake", False))),
        autopilot_mode=AutopilotMode.parse(mode_raw),
        latitude=_num(frame, "latitude_deg", _num(frame, "latitude")),
        longitude=_num(frame, "longitude_deg", _num(frame, "longitude")),
        heading_deg=_num(frame, "heading_deg"),
    )


def frames_to_samples(frames: list[Dict[str, Any]], fps: float) -> list[TelemetrySample]:
    """Convert raw frames that carry no timestamp, spacing them at ``1 / fps``."""
    step = 1.0 / max(1e-6, float(fps))
    return [sample_from_frame(f, i * step) for i, f in enumerate(frames)]

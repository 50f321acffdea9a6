from __future__ import annotations

from safetyhotspots.utils.types import AutopilotMode, TelemetrySample

LAT = 37.4221
LON = -122.0841


def sample(
    t: float,
    speed: float = 45.0,
    g_long: float = 0.0,
    mode: AutopilotMode = AutopilotMode.AUTOSTEER,
    brake: bool = False,
    lat: float = LAT,
    lon: float = LON,
    heading: float = 90.0,
) -> TelemetrySample:
    return TelemetrySample(
        time_s=t,
        speed_mph=speed,
        g_lat=0.0,
        g_long=g_long,
        brake_applied=brake,
        autopilot_mode=mode,
        latitude=lat,
        longitude=lon,
        heading_deg=heading,
    )

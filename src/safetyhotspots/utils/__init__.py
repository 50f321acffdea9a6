from .config import apply_overrides, load_yaml, resolve_path, section
from .logging import setup_logging, setup_logging_from_config
from .types import (
    AutopilotMode,
    ClipFrames,
    DetectedEvent,
    DisengagementEvent,
    IncidentEvent,
    PositionSample,
    ScanEvent,
    Severity,
    TelemetrySample,
    is_gps_valid,
)

__all__ = [
    "AutopilotMode",
    "ClipFrames",
    "DetectedEvent",
    "DisengagementEvent",
    "IncidentEvent",
    "PositionSample",
    "ScanEvent",
    "Severity",
    "TelemetrySample",
    "apply_overrides",
    "is_gps_valid",
    "load_yaml",
    "resolve_path",
    "section",
    "setup_logging",
    "setup_logging_from_config",
]

from .base import EventDetector
from .disengagements import DisengagementDetector
from .incidents import IncidentDetector, IncidentDetectorConfig, SeverityThresholds, classify_severity

__all__ = [
    "DisengagementDetector",
    "EventDetector",
    "IncidentDetector",
    "IncidentDetectorConfig",
    "SeverityThresholds",
    "classify_severity",
]

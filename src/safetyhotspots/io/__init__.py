from .telemetry_csv import CsvFrameSource, DirectoryEventSource, read_clip_csv

__all__ = [
    "CsvFrameSource",
    "DirectoryEventSource",
    "read_clip_csv",
]

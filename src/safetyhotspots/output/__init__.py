from .progress import CallbackProgressSink, LogProgressSink, ProgressSink, RecordingProgressSink, ScanProgress, create_progress_sink
from .sinks import CsvCellSink, HeatmapJsonSink, JsonlEventSink, ResultSink, ResultSinks, ScanSnapshot

__all__ = [
    "CallbackProgressSink",
    "CsvCellSink",
    "HeatmapJsonSink",
    "JsonlEventSink",
    "LogProgressSink",
    "ProgressSink",
    "RecordingProgressSink",
    "ResultSink",
    "ResultSinks",
    "ScanProgress",
    "ScanSnapshot",
    "create_progress_sink",
]

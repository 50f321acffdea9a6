from .frames import frames_to_samples, sample_from_frame, speed_mph_from_frame
from .stream import build_event_stream, sample_positions, stride_frames

__all__ = [
    "build_event_stream",
    "frames_to_samples",
    "sample_from_frame",
    "sample_positions",
    "speed_mph_from_frame",
    "stride_frames",
]

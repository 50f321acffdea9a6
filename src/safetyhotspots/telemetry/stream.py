from __future__ import annotations

import dataclasses
from typing import List, Optional, Sequence

from safetyhotspots.utils.types import ClipFrames, PositionSample, TelemetrySample

DEFAULT_CLIP_DURATION_S = 60.0
DEFAULT_BASE_FPS = 36.0
DEFAULT_SAMPLE_INTERVAL_S = 5.0
POSITION_SAMPLES_PER_CLIP = 12


def stride_frames(base_fps: float = DEFAULT_BASE_FPS, interval_s: float = DEFAULT_SAMPLE_INTERVAL_S) -> int:
    return max(1, int(round(float(base_fps) * float(interval_s))))


def clip_duration_s(clip: Optional[ClipFrames], fallback_s: float = DEFAULT_CLIP_DURATION_S) -> float:
    if clip is None or clip.duration_s is None or clip.duration_s <= 0.0:
        return float(fallback_s)
    return float(clip.duration_s)


def build_event_stream(
    clips: Sequence[Optional[ClipFrames]],
    fallback_duration_s: float = DEFAULT_CLIP_DURATION_S,
    stride: int = 1,
) -> List[TelemetrySample]:
    """Concatenate per-clip samples into one event-relative timeline.

    Each sample's ``time_s`` becomes the sum of the durations of the clips
    before it plus its clip-local time. ``None`` stands for a clip whose
    extraction failed; like an empty clip it only advances the offset.
    ``stride`` keeps every Nth raw frame of each clip, starting at frame 0.
    """
    step = max(1, int(stride))
    out: List[TelemetrySample] = []
    offset_s = 0.0
    for clip_index, clip in enumerate(clips):
        if clip is not None:
            for frame_index in range(0, len(clip.samples), step):
                s = clip.samples[frame_index]
                out.append(
                    dataclasses.replace(
                        s,
                        time_s=offset_s + float(s.time_s),
                        clip_index=clip_index,
                        frame_index=frame_index,
                    )
                )
        offset_s += clip_duration_s(clip, fallback_duration_s)
    return out


def sample_positions(samples: Sequence[TelemetrySample], per_clip: int = POSITION_SAMPLES_PER_CLIP) -> List[PositionSample]:
    interval = max(1, len(samples) // max(1, int(per_clip)))
    out: List[PositionSample] = []
    for i in range(0, len(samples), interval):
        s = samples[i]
        if s.gps_valid:
            out.append(PositionSample(lat=float(s.latitude), lon=float(s.longitude)))
    return out

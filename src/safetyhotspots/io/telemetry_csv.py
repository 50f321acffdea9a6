from __future__ import annotations

import asyncio
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from safetyhotspots.telemetry.frames import sample_from_frame
from safetyhotspots.telemetry.stream import DEFAULT_BASE_FPS
from safetyhotspots.utils.config import load_yaml
from safetyhotspots.utils.types import ScanEvent, TelemetrySample


logger = logging.getLogger("safetyhotspots.io.telemetry_csv")

EVENT_META_FILE = "event.yaml"


def read_clip_csv(path: str, fps_hint: float = DEFAULT_BASE_FPS) -> List[TelemetrySample]:
    """Read one clip's telemetry export.

    Rows carry clip-local ``timestamp`` (or ``time_s``) in seconds; rows
    without one are spaced at ``1 / fps_hint`` by row index.
    """
    step = 1.0 / max(1e-6, float(fps_hint))
    out: List[TelemetrySample] = []
    with open(path, "r", newline="", encoding="utf-8") as f:
        for i, row in enumerate(csv.DictReader(f)):
            t_raw = row.get("timestamp", row.get("time_s"))
            try:
                t_s = float(t_raw) if t_raw not in (None, "") else i * step
            except ValueError:
                t_s = i * step
            out.append(sample_from_frame(row, t_s))
    return out


@dataclass
class CsvFrameSource:
    fps_hint: float = DEFAULT_BASE_FPS

    async def extract(self, clip: str) -> List[TelemetrySample]:
        return await asyncio.to_thread(read_clip_csv, clip, self.fps_hint)


def _clip_durations(meta: Dict[str, Any], n_clips: int) -> Optional[List[Optional[float]]]:
    raw = meta.get("clip_durations_s")
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError("clip_durations_s must be a list")
    out: List[Optional[float]] = [None if v is None else float(v) for v in raw]
    return out[:n_clips]


@dataclass
class DirectoryEventSource:
    """Events laid out as ``root/<event_id>/*.csv``, one CSV per clip in name order.

    An optional ``event.yaml`` next to the clips supplies ``timestamp``,
    ``type`` and ``clip_durations_s``.
    """

    root: str
    newest_first: bool = True

    def events(self) -> List[ScanEvent]:
        root = Path(self.root)
        if not root.is_dir():
            raise RuntimeError(f"Event directory not found: {self.root}")
        dirs = sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name, reverse=self.newest_first)
        out: List[ScanEvent] = []
        for d in dirs:
            clips = [str(p) for p in sorted(d.glob("*.csv"))]
            meta: Dict[str, Any] = {}
            durations: Optional[List[Optional[float]]] = None
            meta_path = d / EVENT_META_FILE
            if meta_path.is_file():
                try:
                    meta = load_yaml(str(meta_path))
                    durations = _clip_durations(meta, len(clips))
                except (OSError, TypeError, ValueError, yaml.YAMLError):
                    logger.warning("Ignoring unreadable %s for event %s", EVENT_META_FILE, d.name, exc_info=True)
                    meta = {}
                    durations = None
            if not clips:
                logger.debug("event %s has no clips", d.name)
            out.append(
                ScanEvent(
                    event_id=d.name,
                    clips=clips,
                    clip_durations_s=durations,
                    timestamp=str(meta.get("timestamp", d.name)),
                    event_type=None if meta.get("type") is None else str(meta.get("type")),
                )
            )
        return out

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from safetyhotspots.cache.manager import CacheManager
from safetyhotspots.detection.base import EventDetector
from safetyhotspots.detection.disengagements import DisengagementDetector
from safetyhotspots.detection.incidents import IncidentDetector, IncidentDetectorConfig
from safetyhotspots.hotspots.collection import EventCollection
from safetyhotspots.hotspots.grid import GridConfig
from safetyhotspots.output.progress import ProgressSink, ScanProgress
from safetyhotspots.output.sinks import ResultSink, ScanSnapshot
from safetyhotspots.telemetry.stream import (
    DEFAULT_BASE_FPS,
    DEFAULT_CLIP_DURATION_S,
    DEFAULT_SAMPLE_INTERVAL_S,
    POSITION_SAMPLES_PER_CLIP,
    build_event_stream,
    sample_positions,
    stride_frames,
)
from safetyhotspots.utils.types import ClipFrames, DetectedEvent, PositionSample, ScanEvent, TelemetrySample


logger = logging.getLogger("safetyhotspots.pipeline.scan")

YieldPoint = Callable[[], Awaitable[None]]


async def cooperative_yield() -> None:
    await asyncio.sleep(0)


async def no_yield() -> None:
    return None


class FrameSource(Protocol):
    async def extract(self, clip: str) -> List[TelemetrySample]:
        ...


class CancelSource(Protocol):
    def is_set(self) -> bool:
        ...


class CancelFlag(CancelSource):
    """Boolean cancellation flag owned by the host; the scan only reads it."""

    def __init__(self) -> None:
        self._set = False

    def set(self) -> None:
        self._set = True

    def clear(self) -> None:
        self._set = False

    def is_set(self) -> bool:
        return self._set


@dataclass(frozen=True)
class ScanConfig:
    incidents: IncidentDetectorConfig = IncidentDetectorConfig()
    grid: GridConfig = GridConfig()
    detect_incidents: bool = True
    detect_disengagements: bool = True
    base_fps: float = DEFAULT_BASE_FPS
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S
    fallback_clip_duration_s: float = DEFAULT_CLIP_DURATION_S
    yield_every: int = 3
    position_batch_size: int = 5
    position_samples_per_clip: int = POSITION_SAMPLES_PER_CLIP
    max_events: Optional[int] = None
    use_cache: bool = True

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ScanConfig":
        scan = dict(d.get("scan", {}) or {})
        sampling = dict(d.get("sampling", {}) or {})
        detectors = dict(d.get("detectors", {}) or {})
        yield_every = int(scan.get("yield_every", 3))
        if not 1 <= yield_every <= 5:
            raise ValueError("scan.yield_every must be between 1 and 5")
        max_events = scan.get("max_events")
        return ScanConfig(
            incidents=IncidentDetectorConfig.from_dict(dict(d.get("incidents", {}) or {})),
            grid=GridConfig.from_dict(dict(d.get("grid", {}) or {})),
            detect_incidents=bool(detectors.get("incident", True)),
            detect_disengagements=bool(detectors.get("disengagement", True)),
            base_fps=float(sampling.get("base_fps", DEFAULT_BASE_FPS)),
            sample_interval_s=float(sampling.get("interval_s", DEFAULT_SAMPLE_INTERVAL_S)),
            fallback_clip_duration_s=float(scan.get("fallback_clip_duration_s", DEFAULT_CLIP_DURATION_S)),
            yield_every=yield_every,
            position_batch_size=max(1, int(scan.get("position_batch_size", 5))),
            position_samples_per_clip=max(1, int(sampling.get("position_samples_per_clip", POSITION_SAMPLES_PER_CLIP))),
            max_events=None if max_events is None else max(0, int(max_events)),
            use_cache=bool(scan.get("use_cache", True)),
        )


@dataclass(frozen=True)
class ScanResult:
    progress: ScanProgress
    cancelled: bool


class BatchScanOrchestrator:
    """Drives extraction, detection and caching over a list of events.

    Work is done one clip per step on the host's event loop. Every
    ``yield_every`` clips and after every event the scan awaits the yield
    point so the host stays responsive. The cancel flag is read at the top
    of every event and clip; an event interrupted mid-way contributes
    nothing, events finished before it stay committed.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        cfg: ScanConfig = ScanConfig(),
        cache: Optional[CacheManager] = None,
        progress: Optional[ProgressSink] = None,
        results: Optional[ResultSink] = None,
        cancel: Optional[CancelSource] = None,
        yield_point: YieldPoint = cooperative_yield,
    ) -> None:
        self._frames = frame_source
        self._cfg = cfg
        self._cache = cache if cfg.use_cache else None
        self._progress = progress
        self._results = results
        self._cancel = cancel if cancel is not None else CancelFlag()
        self._yield_point = yield_point
        self._stride = stride_frames(cfg.base_fps, cfg.sample_interval_s)
        self._detectors: List[EventDetector] = []
        if cfg.detect_incidents:
            self._detectors.append(IncidentDetector(cfg.incidents))
        if cfg.detect_disengagements:
            self._detectors.append(DisengagementDetector())
        self._collection = EventCollection()
        self._positions: List[PositionSample] = []

    @property
    def collection(self) -> EventCollection:
        return self._collection

    @property
    def positions(self) -> List[PositionSample]:
        return list(self._positions)

    @property
    def stride(self) -> int:
        return self._stride

    def snapshot(self) -> ScanSnapshot:
        incident_cells, disengagement_cells = self._collection.cells(self._cfg.grid)
        return ScanSnapshot(
            events=self._collection.all(),
            incident_cells=incident_cells,
            disengagement_cells=disengagement_cells,
            positions=list(self._positions),
        )

    async def scan(self, events: Sequence[ScanEvent]) -> ScanResult:
        todo = self._select(events)
        total = len(todo)
        done = 0
        found = 0
        clips_done = 0
        cancelled = False
        logger.info("Scanning %d event(s) for %s", total, ", ".join(d.kind for d in self._detectors) or "nothing")

        for event in todo:
            if self._cancel.is_set():
                cancelled = True
                break

            items = self._load_cached(event)
            if items is None and event.clips:
                clip_frames: List[ClipFrames] = []
                failed = 0
                for clip_index, clip in enumerate(event.clips):
                    if self._cancel.is_set():
                        cancelled = True
                        break
                    frames = await self._extract_clip(event, clip_index, clip)
                    if frames is None:
                        failed += 1
                        frames = ClipFrames(samples=[], duration_s=event.clip_duration_s(clip_index))
                    clip_frames.append(frames)
                    clips_done += 1
                    if clips_done % self._cfg.yield_every == 0:
                        self._report(done, total, found, clips_done)
                        await self._yield_point()
                if cancelled:
                    logger.info("Scan cancelled during event %s; its partial results were dropped", event.event_id)
                    break
                items = self._detect(event, clip_frames)
                if failed:
                    logger.info("Not caching event %s: %d clip(s) failed to extract", event.event_id, failed)
                else:
                    self._save_cached(event, items)

            if items is not None:
                self._collection.replace_source(event.event_id, items)
                found += len(items)
            done += 1
            self._report(done, total, found, clips_done)
            await self._yield_point()

        if cancelled:
            logger.info("Scan cancelled after %d/%d event(s)", done, total)
        else:
            stats = self._collection.stats()
            logger.info(
                "Scan finished: %d event(s), %d clip(s), %d incident(s), %d disengagement(s)",
                done,
                clips_done,
                stats.incidents,
                stats.disengagements,
            )
        self._publish()
        return ScanResult(progress=ScanProgress(done, total, found, clips_done), cancelled=cancelled)

    async def scan_positions(self, events: Sequence[ScanEvent]) -> ScanResult:
        """Collect dense GPS points from the first clip of each event for a coverage heatmap."""
        if self._cache is not None:
            cached = self._cache.load_dataset_positions(events)
            if cached:
                self._positions = cached
                logger.info("Loaded %d position sample(s) from cache", len(cached))
                n = len(events)
                self._report(n, n, len(cached), 0)
                self._publish()
                return ScanResult(progress=ScanProgress(n, n, len(cached), 0), cancelled=False)

        todo = self._select(events)
        total = len(todo)
        points: List[PositionSample] = []
        done = 0
        clips_done = 0
        failed = 0
        cancelled = False
        self._positions = []

        for event in todo:
            if self._cancel.is_set():
                cancelled = True
                break
            if event.clips:
                clip = await self._extract_clip(event, 0, event.clips[0])
                clips_done += 1
                if clip is None:
                    failed += 1
                else:
                    points.extend(sample_positions(clip.samples, self._cfg.position_samples_per_clip))
                self._positions = list(points)
            done += 1
            self._report(done, total, len(points), clips_done)
            if done % self._cfg.position_batch_size == 0:
                await self._yield_point()

        if cancelled:
            logger.info("Position scan cancelled after %d/%d event(s)", done, total)
        else:
            logger.info("Collected %d position sample(s) from %d event(s)", len(points), done)
            if failed:
                logger.info("Not caching positions: %d clip(s) failed to extract", failed)
            elif self._cache is not None:
                self._cache.save_dataset_positions(events, points)
            self._publish()
        return ScanResult(progress=ScanProgress(done, total, len(points), clips_done), cancelled=cancelled)

    def _select(self, events: Sequence[ScanEvent]) -> List[ScanEvent]:
        todo = list(events)
        if self._cfg.max_events is not None and len(todo) > self._cfg.max_events:
            logger.info("Sampling %d of %d events", self._cfg.max_events, len(todo))
            todo = todo[: self._cfg.max_events]
        return todo

    async def _extract_clip(self, event: ScanEvent, clip_index: int, clip: str) -> Optional[ClipFrames]:
        """Extract one clip; ``None`` means the extractor failed and the clip should be retried later."""
        try:
            samples = await self._frames.extract(clip)
        except Exception:
            logger.warning("Failed to extract telemetry for event %s clip %d (%s)", event.event_id, clip_index, clip, exc_info=True)
            return None
        return ClipFrames(samples=list(samples or []), duration_s=event.clip_duration_s(clip_index))

    def _detect(self, event: ScanEvent, clip_frames: Sequence[ClipFrames]) -> List[DetectedEvent]:
        fallback = self._cfg.fallback_clip_duration_s
        full: Optional[List[TelemetrySample]] = None
        sampled: Optional[List[TelemetrySample]] = None
        items: List[DetectedEvent] = []
        for detector in self._detectors:
            if detector.kind == "incident":
                if sampled is None:
                    sampled = build_event_stream(clip_frames, fallback, stride=self._stride)
                items.extend(detector.detect(sampled, event.event_id))
            else:
                if full is None:
                    full = build_event_stream(clip_frames, fallback)
                items.extend(detector.detect(full, event.event_id))
        return items

    def _load_cached(self, event: ScanEvent) -> Optional[List[DetectedEvent]]:
        if self._cache is None or not self._detectors:
            return None
        items: List[DetectedEvent] = []
        for detector in self._detectors:
            cached = self._cache.load_event(detector.kind, event.event_id)
            if cached is None:
                return None
            items.extend(cached)
        logger.debug("cache hit: event=%s items=%d", event.event_id, len(items))
        return items

    def _save_cached(self, event: ScanEvent, items: Sequence[DetectedEvent]) -> None:
        if self._cache is None:
            return
        for detector in self._detectors:
            self._cache.save_event(detector.kind, event.event_id, [e for e in items if e.kind == detector.kind])

    def _report(self, done: int, total: int, found: int, clips_done: int) -> None:
        if self._progress is not None:
            self._progress.on_progress(ScanProgress(done, total, found, clips_done))

    def _publish(self) -> None:
        if self._results is not None:
            self._results.publish(self.snapshot())

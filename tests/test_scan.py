import asyncio
from typing import Dict, List

import pytest
from helpers import sample

from safetyhotspots.cache.manager import CacheManager
from safetyhotspots.cache.store import MemoryStore
from safetyhotspots.output.progress import CallbackProgressSink, RecordingProgressSink, ScanProgress
from safetyhotspots.output.sinks import ScanSnapshot
from safetyhotspots.pipeline.scan import BatchScanOrchestrator, CancelFlag, ScanConfig, cooperative_yield, no_yield
from safetyhotspots.utils.types import AutopilotMode, DisengagementEvent, IncidentEvent, ScanEvent, TelemetrySample


def _handoff(t0: float = 0.0) -> List[TelemetrySample]:
    return [sample(t0, mode=AutopilotMode.AUTOSTEER), sample(t0 + 1.0, mode=AutopilotMode.NONE)]


class FakeFrames:
    def __init__(self, clips: Dict[str, List[TelemetrySample]], on_extract=None) -> None:
        self.clips = clips
        self.calls: List[str] = []
        self.on_extract = on_extract

    async def extract(self, clip: str) -> List[TelemetrySample]:
        self.calls.append(clip)
        if self.on_extract is not None:
            self.on_extract(clip)
        if clip not in self.clips:
            raise RuntimeError(f"cannot decode {clip}")
        return list(self.clips[clip])


class RecordingResults:
    def __init__(self) -> None:
        self.snapshots: List[ScanSnapshot] = []

    def publish(self, snapshot: ScanSnapshot) -> None:
        self.snapshots.append(snapshot)


def _events(n: int, clips_per_event: int = 1) -> List[ScanEvent]:
    return [
        ScanEvent(event_id=f"e{i}", clips=[f"e{i}/c{j}" for j in range(clips_per_event)], timestamp=f"2024-05-0{i + 1}")
        for i in range(n)
    ]


def _frames_for(events: List[ScanEvent]) -> Dict[str, List[TelemetrySample]]:
    return {clip: _handoff() for ev in events for clip in ev.clips}


def _run(coro):
    return asyncio.run(coro)


def test_cancel_after_second_event_keeps_committed_results() -> None:
    events = _events(5)
    cancel = CancelFlag()

    def on_progress(p: ScanProgress) -> None:
        if p.items_done == 2:
            cancel.set()

    orch = BatchScanOrchestrator(
        FakeFrames(_frames_for(events)),
        progress=CallbackProgressSink(on_progress),
        cancel=cancel,
    )
    result = _run(orch.scan(events))
    assert result.cancelled
    assert result.progress.items_done == 2
    assert result.progress.items_total == 5
    assert orch.collection.sources() == ["e0", "e1"]
    assert all(isinstance(e, DisengagementEvent) for e in orch.collection.all())


def test_cancel_mid_event_drops_partial_event() -> None:
    events = _events(2, clips_per_event=3)
    cancel = CancelFlag()

    def on_extract(clip: str) -> None:
        if clip == "e1/c1":
            cancel.set()

    frames = FakeFrames(_frames_for(events), on_extract=on_extract)
    orch = BatchScanOrchestrator(frames, cancel=cancel, yield_point=no_yield)
    result = _run(orch.scan(events))
    assert result.cancelled
    assert result.progress.items_done == 1
    assert orch.collection.sources() == ["e0"]
    assert "e1/c2" not in frames.calls


def test_preset_cancel_does_nothing() -> None:
    events = _events(3)
    cancel = CancelFlag()
    cancel.set()
    frames = FakeFrames(_frames_for(events))
    result = _run(BatchScanOrchestrator(frames, cancel=cancel).scan(events))
    assert result.cancelled
    assert result.progress.items_done == 0
    assert frames.calls == []


def test_failed_clip_is_skipped_and_advances_by_fallback_duration() -> None:
    event = ScanEvent(event_id="e0", clips=["bad", "good"])
    orch = BatchScanOrchestrator(FakeFrames({"good": _handoff(0.0)}))
    result = _run(orch.scan([event]))
    assert not result.cancelled
    assert result.progress.items_done == 1
    assert result.progress.sub_items_processed == 2
    (d,) = orch.collection.disengagements()
    assert d.clip_index == 1
    assert abs(d.time_s - 61.0) < 1e-9


def test_known_clip_durations_offset_the_timeline() -> None:
    event = ScanEvent(event_id="e0", clips=["a", "b"], clip_durations_s=[42.0, 60.0])
    orch = BatchScanOrchestrator(FakeFrames({"a": [sample(0.0, mode=AutopilotMode.FSD)], "b": _handoff(0.0)}))
    _run(orch.scan([event]))
    (d,) = orch.collection.disengagements()
    assert abs(d.time_s - 43.0) < 1e-9


def test_incidents_use_sampled_stream() -> None:
    clip = [
        sample(0.0, speed=40.0),
        sample(1.5, speed=25.0, g_long=0.3),
        sample(3.0, speed=25.0, g_long=0.1),
    ]
    event = ScanEvent(event_id="e0", clips=["c"])
    cfg = ScanConfig(base_fps=1.0, sample_interval_s=1.0)
    orch = BatchScanOrchestrator(FakeFrames({"c": clip}), cfg=cfg)
    assert orch.stride == 1
    _run(orch.scan([event]))
    (inc,) = orch.collection.incidents()
    assert isinstance(inc, IncidentEvent)
    assert inc.time_s == 1.5

    # default stride keeps only frame 0 of this short clip
    orch = BatchScanOrchestrator(FakeFrames({"c": clip}))
    assert orch.stride == 180
    _run(orch.scan([event]))
    assert orch.collection.incidents() == []


def test_cache_hit_skips_extraction() -> None:
    events = _events(3)
    cache = CacheManager(MemoryStore())
    first = BatchScanOrchestrator(FakeFrames(_frames_for(events)), cache=cache)
    _run(first.scan(events))

    frames = FakeFrames({})
    second = BatchScanOrchestrator(frames, cache=cache)
    result = _run(second.scan(events))
    assert frames.calls == []
    assert result.progress.items_done == 3
    assert result.progress.events_found == 3
    assert second.collection.all() == first.collection.all()


def test_disabled_cache_is_ignored() -> None:
    events = _events(1)
    cache = CacheManager(MemoryStore())
    _run(BatchScanOrchestrator(FakeFrames(_frames_for(events)), cache=cache).scan(events))
    frames = FakeFrames(_frames_for(events))
    _run(BatchScanOrchestrator(frames, cfg=ScanConfig(use_cache=False), cache=cache).scan(events))
    assert frames.calls == ["e0/c0"]


def test_rescan_replaces_source_results() -> None:
    events = _events(1)
    frames = FakeFrames({"e0/c0": _handoff() + _handoff(2.0)})
    orch = BatchScanOrchestrator(frames)
    _run(orch.scan(events))
    assert len(orch.collection) == 2
    frames.clips["e0/c0"] = _handoff()
    _run(orch.scan(events))
    assert len(orch.collection) == 1


def test_event_without_clips_counts_but_commits_nothing() -> None:
    events = [ScanEvent(event_id="empty", clips=[])] + _events(1)
    sink = RecordingProgressSink()
    orch = BatchScanOrchestrator(FakeFrames(_frames_for(events)), progress=sink)
    result = _run(orch.scan(events))
    assert result.progress.items_done == 2
    assert not orch.collection.has_source("empty")
    assert orch.collection.has_source("e0")
    assert sink.last.items_done == 2


def test_yield_point_cadence() -> None:
    events = _events(2, clips_per_event=3)
    calls: List[int] = []

    async def counting_yield() -> None:
        calls.append(1)

    orch = BatchScanOrchestrator(FakeFrames(_frames_for(events)), yield_point=counting_yield)
    _run(orch.scan(events))
    # one per three clips plus one per event
    assert len(calls) == 4


def test_max_events_limits_the_scan() -> None:
    events = _events(5)
    frames = FakeFrames(_frames_for(events))
    result = _run(BatchScanOrchestrator(frames, cfg=ScanConfig(max_events=2)).scan(events))
    assert result.progress.items_total == 2
    assert frames.calls == ["e0/c0", "e1/c0"]


def test_progress_reports_are_monotonic() -> None:
    events = _events(4, clips_per_event=2)
    sink = RecordingProgressSink()
    _run(BatchScanOrchestrator(FakeFrames(_frames_for(events)), progress=sink).scan(events))
    done = [p.items_done for p in sink.updates]
    assert done == sorted(done)
    # each clip carries one hand-off
    assert sink.last == ScanProgress(4, 4, 8, 8)


def test_results_are_published_with_cells() -> None:
    events = _events(2)
    results = RecordingResults()
    _run(BatchScanOrchestrator(FakeFrames(_frames_for(events)), results=results).scan(events))
    (snap,) = results.snapshots
    assert len(snap.events) == 2
    assert snap.incident_cells == []
    (cell,) = snap.disengagement_cells
    assert cell.count == 2
    assert cell.mode_breakdown == {"AUTOSTEER": 2}


def _gps_clip() -> List[TelemetrySample]:
    return [sample(i / 36.0, lat=37.42 + i * 1e-4) for i in range(24)]


def test_scan_positions_collects_and_caches() -> None:
    events = _events(6)
    cache = CacheManager(MemoryStore())
    frames = FakeFrames({clip: _gps_clip() for ev in events for clip in ev.clips})
    orch = BatchScanOrchestrator(frames, cache=cache)
    result = _run(orch.scan_positions(events))
    assert not result.cancelled
    assert len(orch.positions) == 6 * 12

    frames2 = FakeFrames({})
    orch2 = BatchScanOrchestrator(frames2, cache=cache)
    _run(orch2.scan_positions(events))
    assert frames2.calls == []
    assert orch2.positions == orch.positions


def test_scan_positions_cache_misses_on_changed_dataset() -> None:
    events = _events(3)
    cache = CacheManager(MemoryStore())
    clips = {clip: _gps_clip() for ev in _events(4) for clip in ev.clips}
    _run(BatchScanOrchestrator(FakeFrames(clips), cache=cache).scan_positions(events))
    frames = FakeFrames(clips)
    _run(BatchScanOrchestrator(frames, cache=cache).scan_positions(_events(4)))
    assert len(frames.calls) == 4


@pytest.mark.parametrize("bad", [0, 6])
def test_scan_config_rejects_yield_every_out_of_range(bad: int) -> None:
    with pytest.raises(ValueError):
        ScanConfig.from_dict({"scan": {"yield_every": bad}})


def test_scan_config_from_dict_reads_sections() -> None:
    cfg = ScanConfig.from_dict(
        {
            "detectors": {"incident": False},
            "sampling": {"base_fps": 30.0, "interval_s": 2.0},
            "scan": {"yield_every": 5, "max_events": 10},
            "incidents": {"cooldown_s": 3.0},
        }
    )
    assert not cfg.detect_incidents and cfg.detect_disengagements
    assert cfg.yield_every == 5
    assert cfg.max_events == 10
    assert cfg.incidents.cooldown_s == 3.0
    orch = BatchScanOrchestrator(FakeFrames({}), cfg=cfg)
    assert orch.stride == 60


def test_event_with_failed_clip_is_retried_on_next_scan() -> None:
    event = ScanEvent(event_id="e0", clips=["c0", "c1"])
    cache = CacheManager(MemoryStore())
    flaky = FakeFrames({"c1": _handoff()})
    first = BatchScanOrchestrator(flaky, cache=cache)
    _run(first.scan([event]))
    assert len(first.collection) == 1
    assert cache.load_event("disengagement", "e0") is None

    frames = FakeFrames({"c0": _handoff(), "c1": _handoff()})
    second = BatchScanOrchestrator(frames, cache=cache)
    _run(second.scan([event]))
    assert frames.calls == ["c0", "c1"]
    assert [d.clip_index for d in second.collection.disengagements()] == [0, 1]
    assert cache.load_event("disengagement", "e0") is not None


def test_position_scan_with_failed_clip_is_not_cached() -> None:
    events = _events(2)
    cache = CacheManager(MemoryStore())
    _run(BatchScanOrchestrator(FakeFrames({"e0/c0": _gps_clip()}), cache=cache).scan_positions(events))
    assert cache.load_dataset_positions(events) is None

    frames = FakeFrames({clip: _gps_clip() for ev in events for clip in ev.clips})
    orch = BatchScanOrchestrator(frames, cache=cache)
    _run(orch.scan_positions(events))
    assert len(frames.calls) == 2
    assert len(orch.positions) == 24


def test_cancel_from_other_task_lands_during_cache_hits() -> None:
    events = _events(4)
    cache = CacheManager(MemoryStore())
    _run(BatchScanOrchestrator(FakeFrames(_frames_for(events)), cache=cache).scan(events))

    cancel = CancelFlag()
    orch = BatchScanOrchestrator(FakeFrames({}), cache=cache, cancel=cancel, yield_point=cooperative_yield)

    async def interrupt() -> None:
        cancel.set()

    async def main():
        return await asyncio.gather(orch.scan(events), interrupt())

    result, _ = _run(main())
    assert result.cancelled
    assert result.progress.items_done == 1
    assert orch.collection.sources() == ["e0"]

import asyncio

import pytest

from safetyhotspots.io.telemetry_csv import CsvFrameSource, DirectoryEventSource, read_clip_csv
from safetyhotspots.utils.types import AutopilotMode

HEADER = "timestamp,speed_mph,g_force_y,brake_applied,autopilot_state,latitude,longitude,heading_deg\n"


def _write_clip(path, rows) -> None:
    path.write_text(HEADER + "".join(rows), encoding="utf-8")


def test_read_clip_csv_maps_columns(tmp_path) -> None:
    p = tmp_path / "front.csv"
    _write_clip(
        p,
        [
            "0.0,45,0.0,0,AUTOSTEER,37.42,-122.08,90\n",
            "0.5,41,-0.3,1,NONE,37.42,-122.08,91\n",
        ],
    )
    samples = read_clip_csv(str(p))
    assert [s.time_s for s in samples] == [0.0, 0.5]
    assert samples[0].autopilot_mode is AutopilotMode.AUTOSTEER
    assert samples[1].autopilot_mode is AutopilotMode.NONE
    assert abs(samples[1].g_long - 0.3) < 1e-9
    assert samples[1].brake_applied is True


def test_read_clip_csv_spaces_rows_without_timestamp(tmp_path) -> None:
    p = tmp_path / "clip.csv"
    p.write_text("speed_mph\n10\n11\n12\n", encoding="utf-8")
    samples = read_clip_csv(str(p), fps_hint=4.0)
    assert [s.time_s for s in samples] == [0.0, 0.25, 0.5]


def test_csv_frame_source_runs_off_loop(tmp_path) -> None:
    p = tmp_path / "clip.csv"
    _write_clip(p, ["0.0,30,0,0,TACC,37.42,-122.08,0\n"])
    samples = asyncio.run(CsvFrameSource().extract(str(p)))
    assert len(samples) == 1 and samples[0].autopilot_mode is AutopilotMode.TACC


def test_directory_event_source_reads_events_and_metadata(tmp_path) -> None:
    for name in ("2024-05-01_10-00-00", "2024-05-02_09-30-00"):
        d = tmp_path / name
        d.mkdir()
        _write_clip(d / "b.csv", [])
        _write_clip(d / "a.csv", [])
    (tmp_path / "2024-05-02_09-30-00" / "event.yaml").write_text(
        "timestamp: '2024-05-02T09:30:00'\ntype: sentry\nclip_durations_s: [58.0, 60.0, 60.0]\n",
        encoding="utf-8",
    )
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    events = DirectoryEventSource(str(tmp_path)).events()
    assert [e.event_id for e in events] == ["2024-05-02_09-30-00", "2024-05-01_10-00-00"]
    newest, oldest = events
    assert [p.split("/")[-1] for p in newest.clips] == ["a.csv", "b.csv"]
    assert newest.timestamp == "2024-05-02T09:30:00"
    assert newest.event_type == "sentry"
    assert newest.clip_durations_s == [58.0, 60.0]
    assert oldest.timestamp == "2024-05-01_10-00-00"
    assert oldest.clip_durations_s is None

    oldest_first = DirectoryEventSource(str(tmp_path), newest_first=False).events()
    assert oldest_first[0].event_id == "2024-05-01_10-00-00"


def test_directory_event_source_missing_root(tmp_path) -> None:
    with pytest.raises(RuntimeError):
        DirectoryEventSource(str(tmp_path / "nope")).events()


@pytest.mark.parametrize(
    "meta",
    [
        "- not a dict\n",
        "timestamp: [unclosed\n",
        "clip_durations_s: 60\n",
        "clip_durations_s: [sixty]\n",
        "clip_durations_s: [{a: 1}]\n",
    ],
)
def test_bad_event_metadata_falls_back_to_defaults(tmp_path, meta: str) -> None:
    good = tmp_path / "a"
    good.mkdir()
    _write_clip(good / "c.csv", [])
    (good / "event.yaml").write_text("timestamp: '2024-05-01T10:00:00'\n", encoding="utf-8")
    bad = tmp_path / "b"
    bad.mkdir()
    _write_clip(bad / "c.csv", [])
    (bad / "event.yaml").write_text(meta, encoding="utf-8")

    events = {e.event_id: e for e in DirectoryEventSource(str(tmp_path)).events()}
    assert set(events) == {"a", "b"}
    assert events["a"].timestamp == "2024-05-01T10:00:00"
    assert events["b"].timestamp == "b"
    assert events["b"].clip_durations_s is None
    assert len(events["b"].clips) == 1

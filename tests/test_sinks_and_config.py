import csv
import json
from pathlib import Path

import pytest

from safetyhotspots.hotspots.grid import aggregate_events
from safetyhotspots.output.progress import LogProgressSink, RecordingProgressSink, ScanProgress, create_progress_sink
from safetyhotspots.output.sinks import CELL_FIELDS, CsvCellSink, HeatmapJsonSink, JsonlEventSink, ResultSinks, ScanSnapshot
from safetyhotspots.pipeline.scan import ScanConfig
from safetyhotspots.utils.config import apply_overrides, load_yaml, section
from safetyhotspots.utils.types import AutopilotMode, DisengagementEvent, IncidentEvent, PositionSample, Severity

ROOT = Path(__file__).resolve().parents[1]


def _snapshot() -> ScanSnapshot:
    events = [
        IncidentEvent(
            time_s=1.5,
            lat=37.4221,
            lon=-122.0841,
            severity=Severity.CRITICAL,
            max_decel_g=0.6,
            avg_decel_g=0.4,
            speed_drop_mph=22.0,
            speed_at_window_start_mph=50.0,
            autopilot_mode=AutopilotMode.FSD,
            source_event_id="e0",
        ),
        DisengagementEvent(
            time_s=9.0,
            lat=37.4221,
            lon=-122.0841,
            from_mode=AutopilotMode.TACC,
            speed_mph=30.0,
            heading_deg=270.0,
            source_event_id="e0",
        ),
    ]
    incident_cells, disengagement_cells = aggregate_events(events)
    return ScanSnapshot(events=events, incident_cells=incident_cells, disengagement_cells=disengagement_cells)


def test_jsonl_and_csv_sinks_write_results(tmp_path) -> None:
    events_path = tmp_path / "out" / "events.jsonl"
    cells_path = tmp_path / "out" / "cells.csv"
    ResultSinks(events=JsonlEventSink(str(events_path)), cells=CsvCellSink(str(cells_path))).publish(_snapshot())

    lines = events_path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(x)["type"] for x in lines] == ["incident", "disengagement"]

    with open(cells_path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert list(rows[0].keys()) == CELL_FIELDS
    assert [r["kind"] for r in rows] == ["incident", "disengagement"]
    assert rows[0]["critical"] == "1"
    assert rows[0]["intensity"] == "1.0"
    assert rows[1]["direction"] == "W"
    assert rows[1]["modes"] == "TACC=1"


def test_progress_sinks() -> None:
    rec = RecordingProgressSink()
    with pytest.raises(RuntimeError):
        _ = rec.last
    rec.on_progress(ScanProgress(1, 4, 0, 3))
    assert rec.last.fraction == 0.25
    assert ScanProgress(0, 0, 0, 0).fraction == 1.0
    assert isinstance(create_progress_sink({}), LogProgressSink)
    assert isinstance(create_progress_sink({"type": "none"}), RecordingProgressSink)
    with pytest.raises(ValueError):
        create_progress_sink({"type": "tqdm"})


def test_shipped_config_loads() -> None:
    cfg = load_yaml(str(ROOT / "configs" / "scan.yaml"))
    scan_cfg = ScanConfig.from_dict(cfg)
    assert scan_cfg.yield_every == 3
    assert scan_cfg.incidents.min_decel_g == 0.2
    assert scan_cfg.grid.weight_warning == 0.6
    assert section(cfg, "cache")["version"] == 3


def test_section_requires_mapping() -> None:
    assert section({}, "missing") == {}
    with pytest.raises(ValueError):
        section({"scan": [1, 2]}, "scan")


def test_apply_overrides_parses_yaml_scalars() -> None:
    cfg = {"scan": {"yield_every": 3}}
    apply_overrides(cfg, ["scan.max_events=20", "cache.backend=memory", "detectors.incident=false"])
    assert cfg["scan"] == {"yield_every": 3, "max_events": 20}
    assert cfg["cache"] == {"backend": "memory"}
    assert cfg["detectors"]["incident"] is False
    with pytest.raises(ValueError):
        apply_overrides(cfg, ["scan"])
    with pytest.raises(ValueError):
        apply_overrides(cfg, ["scan.yield_every.x=1"])


def test_heatmap_sink_writes_layers(tmp_path) -> None:
    path = tmp_path / "heat.json"
    snap = _snapshot()
    snap = ScanSnapshot(
        events=snap.events,
        incident_cells=snap.incident_cells,
        disengagement_cells=snap.disengagement_cells,
        positions=[PositionSample(37.5, -122.1)],
    )
    HeatmapJsonSink(str(path)).publish(snap)
    doc = json.loads(path.read_text(encoding="utf-8"))
    lat, lon, intensity = doc["incidents"][0]
    assert abs(lat - 37.422) < 1e-9 and abs(lon + 122.084) < 1e-9
    assert intensity == 1.0
    assert len(doc["disengagements"]) == 1
    assert doc["positions"] == [[37.5, -122.1, 1.0]]

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import signal
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from safetyhotspots.cache.manager import CacheConfig, CacheManager
from safetyhotspots.cache.store import create_store
from safetyhotspots.io.telemetry_csv import CsvFrameSource, DirectoryEventSource
from safetyhotspots.output.progress import create_progress_sink
from safetyhotspots.output.sinks import CsvCellSink, HeatmapJsonSink, JsonlEventSink, ResultSinks
from safetyhotspots.pipeline.scan import BatchScanOrchestrator, CancelFlag, ScanConfig, cooperative_yield
from safetyhotspots.utils.config import apply_overrides, load_yaml, resolve_path, section
from safetyhotspots.utils.logging import setup_logging_from_config


logger = logging.getLogger("safetyhotspots.scripts.run_scan")


def _build_sinks(cfg: dict, base_dir: str) -> ResultSinks:
    out = section(cfg, "output")
    ev = dict(out.get("events_jsonl", {}) or {})
    cells = dict(out.get("cells_csv", {}) or {})
    heat = dict(out.get("heatmap_json", {}) or {})
    return ResultSinks(
        events=JsonlEventSink(resolve_path(str(ev.get("path")), base_dir)) if bool(ev.get("enabled", False)) else None,
        cells=CsvCellSink(resolve_path(str(cells.get("path")), base_dir)) if bool(cells.get("enabled", False)) else None,
        heatmap=HeatmapJsonSink(resolve_path(str(heat.get("path")), base_dir)) if bool(heat.get("enabled", False)) else None,
    )


async def _run(args: argparse.Namespace, cfg: dict, base_dir: str) -> int:
    scan_cfg = ScanConfig.from_dict(cfg)
    if args.max_events is not None:
        scan_cfg = dataclasses.replace(scan_cfg, max_events=int(args.max_events))

    cache_section = section(cfg, "cache")
    if cache_section.get("path"):
        cache_section["path"] = resolve_path(str(cache_section["path"]), base_dir)
    cache = CacheManager(create_store(cache_section), CacheConfig.from_dict(cache_section))

    cancel = CancelFlag()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this platform")

    events = DirectoryEventSource(resolve_path(args.events, base_dir)).events()
    orchestrator = BatchScanOrchestrator(
        CsvFrameSource(fps_hint=scan_cfg.base_fps),
        cfg=scan_cfg,
        cache=cache,
        progress=create_progress_sink(section(cfg, "progress")),
        results=_build_sinks(cfg, base_dir),
        cancel=cancel,
        yield_point=cooperative_yield,
    )
    result = await orchestrator.scan(events)
    if args.positions and not result.cancelled:
        await orchestrator.scan_positions(events)
    return 130 if result.cancelled else 0


def main() -> None:
    ap = argparse.ArgumentParser(description="Scan telemetry events for safety incidents and disengagement hotspots")
    ap.add_argument("--events", required=True, help="Directory with one sub-directory of clip CSVs per event")
    ap.add_argument("--config", default="configs/scan.yaml", help="Scan YAML")
    ap.add_argument("--max-events", type=int, default=None, help="Only scan the first N events")
    ap.add_argument("--positions", action="store_true", help="Also collect dense GPS points for a coverage heatmap")
    ap.add_argument("--set", dest="overrides", action="append", default=[], metavar="KEY=VALUE", help="Override a config value, e.g. scan.max_events=20")
    ap.add_argument("--log-level", default=None, help="Overrides logging.level from the config")
    ap.add_argument("--log-file", default=None)
    args = ap.parse_args()

    base_dir = os.getcwd()
    cfg = apply_overrides(load_yaml(resolve_path(args.config, base_dir)), args.overrides)
    setup_logging_from_config(section(cfg, "logging"), level=args.log_level, log_file=args.log_file)
    logger.info("Loaded config %s", args.config)
    sys.exit(asyncio.run(_run(args, cfg, base_dir)))


if __name__ == "__main__":
    main()

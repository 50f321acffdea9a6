from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol

logger = logging.getLogger("safetyhotspots.output.progress")


@dataclass(frozen=True)
class ScanProgress:
    items_done: int
    items_total: int
    events_found: int
    sub_items_processed: int

    @property
    def fraction(self) -> float:
        if self.items_total <= 0:
            return 1.0
        return min(1.0, float(self.items_done) / float(self.items_total))


class ProgressSink(Protocol):
    def on_progress(self, progress: ScanProgress) -> None:
        ...


@dataclass
class LogProgressSink(ProgressSink):
    label: str = "scan"
    level: str = "INFO"

    def on_progress(self, progress: ScanProgress) -> None:
        lvl = getattr(logging, str(self.level).upper(), logging.INFO)
        logger.log(
            lvl,
            "%s progress %d/%d (%.0f%%) found=%d clips=%d",
            self.label,
            progress.items_done,
            progress.items_total,
            100.0 * progress.fraction,
            progress.events_found,
            progress.sub_items_processed,
        )


@dataclass
class CallbackProgressSink(ProgressSink):
    callback: Callable[[ScanProgress], None]

    def on_progress(self, progress: ScanProgress) -> None:
        self.callback(progress)


@dataclass
class RecordingProgressSink(ProgressSink):
    updates: List[ScanProgress] = field(default_factory=list)

    def on_progress(self, progress: ScanProgress) -> None:
        self.updates.append(progress)

    @property
    def last(self) -> ScanProgress:
        if not self.updates:
            raise RuntimeError("No progress recorded")
        return self.updates[-1]


def create_progress_sink(cfg: Dict[str, Any]) -> ProgressSink:
    t = str(cfg.get("type", "log")).lower()
    if t == "log":
        return LogProgressSink(label=str(cfg.get("label", "scan")), level=str(cfg.get("level", "INFO")))
    if t == "none":
        return RecordingProgressSink()
    raise ValueError(f"Unknown progress.type: {t}")

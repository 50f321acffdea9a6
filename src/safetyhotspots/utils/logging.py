from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_ROOT = "safetyhotspots"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _level(name: Optional[str], default: int = logging.INFO) -> int:
    if name is None:
        return default
    return getattr(logging, str(name).upper(), default)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, package_level: Optional[str] = None) -> None:
    """Configure root handlers; ``package_level`` tunes only the ``safetyhotspots.*`` loggers."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=_level(level), format=LOG_FORMAT, handlers=handlers, force=True)
    if package_level is not None:
        logging.getLogger(LOGGER_ROOT).setLevel(_level(package_level))


def setup_logging_from_config(cfg: Dict[str, Any], level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Same as setup_logging, reading the ``logging`` section; explicit arguments win."""
    setup_logging(
        level=str(level or cfg.get("level", "INFO")),
        log_file=log_file or cfg.get("file") or None,
        package_level=cfg.get("package_level"),
    )

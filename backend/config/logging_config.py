"""
Logging setup for the FlyFF item editor

Console output goes to stderr. With file sinks enabled three files are kept
in the writable logs folder:

    editor_<started>.log   everything at DEBUG for one server run
    resources.log          what the parsers and services did: reads, edits, saves
    error.log              errors only

LOG_LEVEL sets the console level. LOG_FILTER takes comma separated module
name fragments ("prop_item,resource_writer") and shows only those modules,
at DEBUG, on the console.
"""
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from utils.paths import get_writable_dir

# Top level packages whose records form the resource trail
RESOURCE_PACKAGES = ("parsers", "services")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)
RUN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
TRAIL_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def _name_filter(fragments: List[str]) -> Callable[[dict], bool]:
    return lambda record: any(fragment in record["name"] for fragment in fragments)


def _package_filter(packages) -> Callable[[dict], bool]:
    return lambda record: record["name"].split(".", 1)[0] in packages


def _console_level() -> Optional[str]:
    """LOG_LEVEL upper-cased, or None when loguru does not know the level"""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    try:
        logger.level(level)
    except ValueError:
        return None
    return level


def configure_logging(enable_file_sinks: bool = True, log_dir: Optional[Path] = None) -> List[int]:
    """
    Replace all loguru sinks with the editor's console and file sinks.

    Returns the ids of the sinks that were added.
    """
    logger.remove()
    sink_ids = []

    fragments = [f.strip() for f in os.getenv("LOG_FILTER", "").split(",") if f.strip()]
    level = _console_level()

    if fragments:
        sink_ids.append(logger.add(sys.stderr, level="DEBUG", format=CONSOLE_FORMAT,
                                   filter=_name_filter(fragments)))
    else:
        sink_ids.append(logger.add(sys.stderr, level=level or "INFO", format=CONSOLE_FORMAT))

    if level is None:
        logger.warning(f"Unknown LOG_LEVEL '{os.getenv('LOG_LEVEL')}', using INFO")

    if not enable_file_sinks:
        return sink_ids

    log_dir = Path(log_dir) if log_dir else get_writable_dir("logs")
    started = datetime.now().strftime("%Y%m%d_%H%M%S")

    sink_ids.append(logger.add(
        log_dir / f"editor_{started}.log",
        rotation="5 MB",
        retention=5,
        level="DEBUG",
        format=RUN_FORMAT,
        encoding="utf-8",
    ))
    sink_ids.append(logger.add(
        log_dir / "resources.log",
        rotation="2 MB",
        retention=3,
        level="INFO",
        format=TRAIL_FORMAT,
        filter=_package_filter(RESOURCE_PACKAGES),
        encoding="utf-8",
    ))
    sink_ids.append(logger.add(
        log_dir / "error.log",
        rotation="10 MB",
        retention="14 days",
        level="ERROR",
        format=RUN_FORMAT,
        encoding="utf-8",
    ))

    logger.debug(f"Log files in {log_dir}")
    return sink_ids

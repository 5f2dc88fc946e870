import logging
from pathlib import Path
from typing import Optional
from clipbatch.domain.events import LogEmitted
from clipbatch.domain.models import Severity

LOG_FILE_NAME = "clipbatch.log"

SEVERITY_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}

def setup_logging(log_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for clipbatch.

    Creates the log directory (normally the scratch area under the watched
    root) and clipbatch.log inside it. Returns configured logger instance.

    Args:
        log_dir: Directory that receives clipbatch.log
        debug: If True, enable DEBUG level logging (ffmpeg command lines, timings)
        log_path: Optional path to log file (overrides log_dir)
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = Path(log_path) if log_path else (log_dir / LOG_FILE_NAME)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file, encoding="utf-8")],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger

def level_for(severity: Severity) -> int:
    return SEVERITY_LEVELS.get(severity, logging.INFO)

def emit_log(event_bus, logger: logging.Logger, message: str, severity: Severity = Severity.INFO) -> None:
    """Writes a user-facing line to the log file and publishes it as LogEmitted."""
    logger.log(level_for(severity), message)
    if event_bus is not None:
        event_bus.publish(LogEmitted(message=message, severity=severity))

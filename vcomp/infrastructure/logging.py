import logging
from pathlib import Path
from typing import Optional


def setup_logging(log_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for vcomp.

    Creates the log directory and compression.log file.
    Returns configured logger instance.

    Args:
        log_dir: Directory where compression.log is written
        debug: If True, enable DEBUG level logging (encoder command lines, raw progress)
        log_path: Optional path to log file (overrides log_dir)
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = Path(log_path) if log_path else (log_dir / "compression.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger("vcomp")
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger

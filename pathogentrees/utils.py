"""
Helper Functions and Utilities

This module provides common utility functions used throughout the
pathogentrees package: logging configuration, directory handling, timestamps
and a lightweight progress tracker for long download loops.

Key Utilities:
1. Logging Configuration
   - Centralized logging setup for the ``pathogentrees`` package logger
   - Console output on the diagnostic stream (stderr), optional log file

2. File Operations
   - Automatic directory creation with pathlib
   - Verbatim copying of downloaded artifacts into the output tree

3. Time and Progress
   - Human-readable elapsed time
   - Progress logging at fixed item intervals

Example Usage:
    >>> from pathogentrees.utils import setup_logging, create_output_directory
    >>> logger = setup_logging(log_level="DEBUG")
    >>> out = create_output_directory("out/SNP_trees")
"""

from typing import Optional, Union, List, Dict
from pathlib import Path
import logging
import shutil
import sys
from datetime import datetime

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for pathogentrees.

    Sets up the package logger with a console handler on stderr and an
    optional file handler. Diagnostics go to stderr so that data written to
    stdout (e.g. ``--list`` output) stays clean.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages. If None, uses default format

    Returns
    -------
    logging.Logger
        Configured logger instance

    Examples
    --------
    >>> logger = setup_logging(log_level="DEBUG", log_file="out/run.log")
    >>> logger.info("Starting download")

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Starting download
    """
    package_logger = logging.getLogger("pathogentrees")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


# ============================================================================
# File I/O and Path Handling
# ============================================================================

def create_output_directory(output_dir: Union[str, Path]) -> Path:
    """
    Create output directory if it doesn't exist.

    Parameters
    ----------
    output_dir : Union[str, Path]
        Path to output directory

    Returns
    -------
    Path
        Path object for output directory

    Raises
    ------
    OSError
        If directory cannot be created due to permissions or other issues
    """
    path = Path(output_dir)

    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created/verified output directory: {path}")
        return path
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        raise


def setup_directories(temp_dir: Path, output_dir: Path) -> Dict[str, Path]:
    """
    Create the working and output directory trees.

    Both trees mirror the remote layout (Metadata, Clusters, SNP_trees); the
    output tree additionally holds the rendered tree images.
    """
    dirs = {
        'temp': temp_dir,
        'temp_metadata': temp_dir / 'Metadata',
        'temp_clusters': temp_dir / 'Clusters',
        'temp_trees': temp_dir / 'SNP_trees',
        'output': output_dir,
        'metadata': output_dir / 'Metadata',
        'clusters': output_dir / 'Clusters',
        'trees': output_dir / 'SNP_trees',
        'images': output_dir / 'images',
    }

    for dir_path in dirs.values():
        create_output_directory(dir_path)

    return dirs


def copy_files(files: List[Path], destination: Union[str, Path]) -> List[Path]:
    """
    Copy files verbatim into a directory, returning the new paths.

    Used to make the downloaded metadata available to the user while the
    pipeline keeps reading the working copy.
    """
    dest = create_output_directory(destination)
    copied = []
    for src in files:
        target = dest / Path(src).name
        shutil.copyfile(src, target)
        copied.append(target)
    logger.debug(f"Copied {len(copied)} files to {dest}")
    return copied


# ============================================================================
# Time and Formatting Utilities
# ============================================================================

def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(45)
    '45s'
    >>> format_elapsed_time(150)
    '2.5m'
    """
    if seconds < 60:
        return f"{seconds:.0f}s"

    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"

    hours = minutes / 60
    minutes_remainder = minutes % 60
    return f"{int(hours)}h {int(minutes_remainder)}m"


def get_timestamp() -> str:
    """Current local time formatted for report footers."""
    return datetime.now().strftime("%a %b %d %H:%M:%S %Y")


# ============================================================================
# Progress Tracking
# ============================================================================

class ProgressTracker:
    """
    Progress logger for long sequential loops.

    Logs every ``log_every`` items instead of at percentage intervals, since
    the total is only an upper bound when a transfer cap is active.

    Examples
    --------
    >>> tracker = ProgressTracker(total=250, description="Downloading trees")
    >>> for i in range(250):
    ...     tracker.update()
    >>> tracker.finish()
    """

    def __init__(self, total: int, description: str = "Progress", log_every: int = 100):
        self.total = total
        self.description = description
        self.log_every = log_every
        self.current = 0
        self.start_time = datetime.now()

    def update(self, n: int = 1) -> None:
        """Advance by ``n`` items, logging on each ``log_every`` boundary."""
        before = self.current
        self.current += n
        if self.log_every and self.current // self.log_every > before // self.log_every:
            logger.info(f"{self.description}: finished {self.current}/{self.total}")

    def finish(self) -> None:
        """Log completion."""
        elapsed = (datetime.now() - self.start_time).total_seconds()
        logger.info(
            f"{self.description} complete: {self.current} items "
            f"in {format_elapsed_time(elapsed)}"
        )

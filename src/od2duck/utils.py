"""
Shared helpers for od2duck.

Sections:
- Logging and timing
- File names and directories
- Retries for network probes
- YAML input
"""

import functools
import logging
import re
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("od2duck")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# =============================================================================
# Logging and Timing
# =============================================================================

def setup_logging(
    verbose: bool,
    command: Optional[str] = None,
    enable_file_logging: bool = False
) -> Optional[Path]:
    """
    Configure root logging for a CLI run.

    Log records go to stderr so that stdout stays machine readable (the
    export command prints its result as JSON).

    Args:
        verbose: DEBUG level when True, INFO otherwise
        command: CLI command name, used in the log file name
        enable_file_logging: Also write logs/<command>_<timestamp>.log

    Returns:
        Path of the log file, or None when only stderr is used
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file = None

    if enable_file_logging and command:
        logs_dir = ensure_directory(Path("logs"))
        log_file = logs_dir / f"{command}_{datetime.now():%Y%m%d_%H%M%S}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )
    if log_file is not None:
        logger.info(f"Logging to {log_file}")
    return log_file


def timer(func: Callable) -> Callable:
    """Log the wall time of each call, including calls that raise."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            logger.info(f"{func.__qualname__} took {time.perf_counter() - started:.2f}s")
    return wrapper


# =============================================================================
# File Names and Directories
# =============================================================================

def ensure_directory(path: Path) -> Path:
    """Create `path` (and parents) if missing and return it as a Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\s]+')


def clean_filename(name: str) -> str:
    """
    Make a string usable as part of a file name on every platform.

    Path separators, reserved characters and whitespace become single
    underscores, e.g. 'DOMAIN\\some user' -> 'DOMAIN_some_user'.
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", str(name))
    return re.sub(r"_{2,}", "_", cleaned).strip("_")


# =============================================================================
# Retries for Network Probes
# =============================================================================

def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable:
    """
    Retry a call on transient errors, sleeping base_delay * backoff_factor**n.

    Exceptions not listed in `exceptions` propagate immediately; the last
    retried exception is re-raised once max_retries is exhausted.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay
            for attempt in range(1, max_retries + 2):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt > max_retries:
                        logger.error(f"{func.__qualname__} gave up after {attempt} attempts: {e}")
                        raise
                    logger.warning(f"{func.__qualname__} attempt {attempt} failed ({e}), retrying in {delay:.1f}s")
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


# =============================================================================
# YAML Input
# =============================================================================

def load_yaml_file(file_path: Path) -> Any:
    """
    Parse a YAML file with yaml.safe_load.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content is not valid YAML
    """
    import yaml

    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"YAML file not found: {file_path}")

    with file_path.open(encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{file_path} is not valid YAML: {e}") from e

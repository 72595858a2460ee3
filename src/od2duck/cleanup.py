"""Temporary workspace management for export operations."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "od2duck_"


def create_workspace(root: Path) -> Path:
    """Create a fresh workspace directory owned by a single call."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=root))
    logger.debug(f"Created workspace: {workspace}")
    return workspace


def remove_workspace(workspace: Path) -> bool:
    """
    Recursively delete a workspace.

    Returns:
        True if the directory is gone afterwards, False if it could not be removed
    """
    workspace = Path(workspace)
    if not workspace.exists():
        return True
    try:
        shutil.rmtree(workspace)
        logger.debug(f"Removed workspace: {workspace}")
        return True
    except OSError as e:
        logger.warning(f"Could not remove workspace {workspace}: {e}")
        return False


def release_all(steps: Iterable[tuple[str, Callable[[], object]]]) -> list[str]:
    """
    Run release callbacks in order, each independently of the others.

    A failing step is logged and does not stop the remaining ones.

    Returns:
        Names of the steps that failed
    """
    failed = []
    for name, release in steps:
        try:
            release()
        except Exception as e:
            logger.warning(f"Release step '{name}' failed: {e}")
            failed.append(name)
    return failed


def cleanup_stale_workspaces(root: Path, retention_hours: int = 24) -> int:
    """
    Remove workspaces older than the retention period.

    Workspaces are normally removed by the call that created them; this
    catches the ones left behind by killed processes.

    Args:
        root: Workspace root directory
        retention_hours: Workspaces older than this will be removed

    Returns:
        Number of workspaces removed
    """
    root = Path(root)
    if not root.exists():
        return 0

    cutoff_time = time.time() - (retention_hours * 3600)
    cleaned_count = 0

    for item in root.glob(f"{WORKSPACE_PREFIX}*"):
        if not item.is_dir():
            continue
        try:
            if item.stat().st_mtime >= cutoff_time:
                continue
        except OSError as e:
            logger.warning(f"Could not stat workspace {item}: {e}")
            continue
        if remove_workspace(item):
            cleaned_count += 1

    if cleaned_count > 0:
        logger.info(f"Cleaned up {cleaned_count} stale workspaces (>{retention_hours}h)")

    return cleaned_count

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

from knolhash.logging_config import get_logger

logger = get_logger(__name__)

GIT_TIMEOUT_SECONDS = 300


class GitSyncError(RuntimeError):
    """Raised when cloning or pulling a remote source fails."""


def _run_git(args: Sequence[str]) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GitSyncError(f"git {' '.join(args)} failed: {exc}") from exc
    if result.returncode != 0:
        raise GitSyncError(f"git {' '.join(args)} failed: {result.stderr.strip() or result.returncode}")
    return result.stdout


def sync_repository(url: str, local_path: Path | str) -> Path:
    """Clone `url` into `local_path` if missing, otherwise pull the latest changes."""
    target = Path(local_path)
    if not target.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning repository | url=%s path=%s", url, target)
        _run_git(["clone", url, str(target)])
        logger.info("Clone successful | path=%s", target)
    else:
        logger.info("Pulling latest changes | path=%s", target)
        _run_git(["-C", str(target), "pull", "origin"])
        logger.info("Pull successful | path=%s", target)
    return target


__all__ = ["GitSyncError", "sync_repository"]

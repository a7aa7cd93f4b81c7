from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict

from knolhash.utils.scheduler import DEFAULT_PARAMETERS, SchedulerParameters

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_env(env_path: Path | str = ".env", *, override: bool = False) -> None:
    """Lightweight .env loader; existing variables win unless `override` is set."""
    path = Path(env_path)
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if override or key not in os.environ:
            os.environ[key] = value


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def default_settings(*, override: Dict[str, Any] | None = None) -> SimpleNamespace:
    settings = SimpleNamespace(
        db_url=os.getenv("KNOLHASH_DB_URL", "data/knolhash.db"),
        repos_dir=Path(os.getenv("KNOLHASH_REPOS_DIR", "data/repos")),
        listen_addr=os.getenv("KNOLHASH_LISTEN_ADDR", "127.0.0.1:8080"),
        desired_retention=float(os.getenv("KNOLHASH_DESIRED_RETENTION", DEFAULT_PARAMETERS.desired_retention)),
        sync_inline=_env_flag("KNOLHASH_SYNC_INLINE", "true"),
    )
    if override:
        for key, val in override.items():
            setattr(settings, key, val)
    return settings


def normalize_settings(settings: Dict[str, Any] | None) -> Dict[str, Any]:
    """Normalize alias keys so task payloads and CLI overrides share one shape."""
    if settings is None:
        return {}
    normalized = dict(settings)
    if normalized.get("db") and not normalized.get("db_url"):
        normalized["db_url"] = normalized.pop("db")
    if normalized.get("repos") and not normalized.get("repos_dir"):
        normalized["repos_dir"] = normalized.pop("repos")
    if normalized.get("retention") and not normalized.get("desired_retention"):
        normalized["desired_retention"] = normalized.pop("retention")
    if normalized.get("repos_dir") is not None:
        normalized["repos_dir"] = str(normalized["repos_dir"])
    return normalized


def scheduler_parameters(settings: SimpleNamespace) -> SchedulerParameters:
    """Build the validated scheduler parameters once at startup."""
    retention = float(getattr(settings, "desired_retention", DEFAULT_PARAMETERS.desired_retention))
    if retention == DEFAULT_PARAMETERS.desired_retention:
        return DEFAULT_PARAMETERS
    return DEFAULT_PARAMETERS.with_overrides(desired_retention=retention)


def parse_listen_addr(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    return host or "0.0.0.0", int(port)

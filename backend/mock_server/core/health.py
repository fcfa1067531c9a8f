"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and not deadlocked? (cheap, no I/O)
Readiness: can it serve traffic? (storage writable, Redis when configured)
"""

import logging
import tempfile
from pathlib import Path

from mock_server.core.config import Settings
from mock_server.core.redis_client import ping as redis_ping
from mock_server.models import StoreBackendEnum

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Individual dependency checks
# ---------------------------------------------------------------------------

def check_directory(path: Path) -> bool:
    """True if `path` exists (or can be created) and accepts a temp file."""
    try:
        path.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile(dir=path):
            pass
        return True
    except OSError:
        logger.warning("Storage directory %s is not writable", path, exc_info=True)
        return False


def check_redis(settings: Settings) -> bool:
    """PING via the shared client. True when Redis is not the configured store."""
    if settings.STORE_BACKEND != StoreBackendEnum.REDIS:
        return True
    return redis_ping(settings.REDIS_URL)


# ---------------------------------------------------------------------------
# Composite probes
# ---------------------------------------------------------------------------

def liveness_check() -> tuple[bool, list[str]]:
    """No I/O. Return format matches readiness_check."""
    return (True, [])


def readiness_check(settings: Settings) -> tuple[bool, list[str]]:
    """Returns (ok, list of failure names)."""
    failures: list[str] = []
    for name, path in (
        ("data_dir", settings.data_dir),
        ("uploads_dir", settings.uploads_dir),
        ("tus_dir", settings.tus_dir),
        ("store_dir", settings.store_dir),
    ):
        if not check_directory(path):
            failures.append(name)
    if not check_redis(settings):
        failures.append("redis")
    return (not failures, failures)

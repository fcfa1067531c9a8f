"""
Time-based cleanup of persisted gateway state.

- rate counters whose window ended more than the grace period ago
- resumable upload sessions older than UPLOAD_SESSION_TTL_SECONDS
- expired browser sessions

Usage:
  python -m mock_server.sweep [--grace SECONDS] [--upload-ttl SECONDS]
"""

import argparse
import logging
import sys

from mock_server.core.config import Settings, settings
from mock_server.core.gateway import Gateway, build_gateway

_LOG = logging.getLogger(__name__)


def run_sweep(
    gateway: Gateway,
    *,
    grace_seconds: int | None = None,
    upload_ttl_seconds: int | None = None,
) -> dict[str, int]:
    cfg: Settings = gateway.settings
    grace = cfg.RATE_LIMIT_SWEEP_GRACE_SECONDS if grace_seconds is None else grace_seconds
    upload_ttl = (
        cfg.UPLOAD_SESSION_TTL_SECONDS if upload_ttl_seconds is None else upload_ttl_seconds
    )
    removed = {
        "rate_counters": gateway.rate_limiter.cleanup(grace_seconds=grace),
        "upload_sessions": gateway.uploads.sweep_stale(upload_ttl),
        "browser_sessions": gateway.sessions.cleanup(),
    }
    _LOG.info("Sweep removed %s", removed)
    return removed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Remove expired rate counters, stale uploads and browser sessions."
    )
    parser.add_argument(
        "--grace",
        type=int,
        default=None,
        help="Seconds past window end before a rate counter is removed "
        f"(default {settings.RATE_LIMIT_SWEEP_GRACE_SECONDS})",
    )
    parser.add_argument(
        "--upload-ttl",
        type=int,
        default=None,
        help="Age in seconds after which an upload session is removed "
        f"(default {settings.UPLOAD_SESSION_TTL_SECONDS})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    removed = run_sweep(
        build_gateway(settings),
        grace_seconds=args.grace,
        upload_ttl_seconds=args.upload_ttl,
    )
    for name, count in removed.items():
        print(f"{name}: {count} removed")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Reset the usage counters of proxy servers.
Can be run as a cron job at the start of a billing period, or manually.

    python scripts/reset_usage.py              # every server
    python scripts/reset_usage.py --server-id 3
"""

import argparse
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.dependencies import get_settings, init_settings  # noqa: E402
from db.session import get_session_context  # noqa: E402
from proxies.registry import ServerRegistry  # noqa: E402
import structlog  # noqa: E402

log = structlog.get_logger(__name__)


def reset_usage(server_id: int | None = None) -> int:
    """Zero the usage of one server, or of all of them. Returns the count reset."""
    settings = get_settings()
    with get_session_context(settings) as db:
        registry = ServerRegistry.from_settings(db, settings)
        if server_id is not None:
            ids = [server_id]
        else:
            ids = [server.id for server in registry.list_all()]

        reset = 0
        for sid in ids:
            if registry.reset_usage(sid):
                reset += 1
            else:
                log.warning("usage.reset_skipped", server_id=sid)
    return reset


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reset proxy server usage counters")
    parser.add_argument("--server-id", type=int, default=None)
    args = parser.parse_args(argv)

    init_settings()
    count = reset_usage(args.server_id)
    if args.server_id is not None and count == 0:
        print(f"❌ Server {args.server_id} not found")
        return 1
    print(f"✅ Reset usage on {count} server(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

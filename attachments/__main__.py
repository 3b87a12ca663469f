"""CLI runner: python -m attachments --redis ... --object-store ... --secret ... --upstream ..."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from attachments.config.runtime_config import (
    QUEUE_POLICIES,
    ConfigError,
    get_log_level,
    load_settings,
)
from attachments.server import build_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attachments",
        description="Name-addressed, shared-secret gated gateway in front of a tusd upload server",
    )
    parser.add_argument("--redis", dest="redis_url", help="registry url, e.g. redis://localhost:6379/0 (env ATTACHMENTS_REDIS_URL)")
    parser.add_argument(
        "--object-store",
        "--minio",
        dest="object_store_url",
        help="object store endpoint, e.g. http://localhost:9000 (env ATTACHMENTS_OBJECT_STORE_URL)",
    )
    parser.add_argument("--secret", help="base64-encoded shared secret (env ATTACHMENTS_SECRET)")
    parser.add_argument("--upstream", dest="upstream_url", help="tusd base url, e.g. http://localhost:1080 (env ATTACHMENTS_UPSTREAM_URL)")
    parser.add_argument("--base-path", help="route prefix for uploads (default /attachments)")
    parser.add_argument("--hooks-path", help="route receiving tusd HTTP hooks (default /hooks/tusd)")
    parser.add_argument("--queue-size", help="completion queue bound (default 1024)")
    parser.add_argument("--queue-policy", choices=QUEUE_POLICIES, help="behaviour when the completion queue is full")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--log-level", default=None, help="logging level (env LOG_LEVEL, default INFO)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log_level = (args.log_level or get_log_level()).upper()
    logging.basicConfig(level=log_level)

    try:
        settings = load_settings(
            {
                "redis_url": args.redis_url,
                "object_store_url": args.object_store_url,
                "secret": args.secret,
                "upstream_url": args.upstream_url,
                "base_path": args.base_path,
                "hooks_path": args.hooks_path,
                "queue_size": args.queue_size,
                "queue_policy": args.queue_policy,
            }
        )
        app = build_app(settings)
    except ConfigError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2

    logger.info("starting with %r", settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())

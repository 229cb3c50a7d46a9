"""esmigrate command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys

from esmigrate.config import MigrateConfig
from esmigrate.errors import MigrationError
from esmigrate.pipeline import run_migration
from esmigrate.writer import BulkFailurePolicy

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esmigrate",
        description="Copy indexes and documents between Elasticsearch clusters",
    )
    # Defaults live on MigrateConfig; None means "not given on the command line"
    parser.add_argument("-s", "--source", help="Source cluster URL")
    parser.add_argument("-d", "--dest", help="Destination cluster URL")
    parser.add_argument(
        "-c", "--count", dest="page_size", type=int,
        help="Documents per scroll page (default: 100)",
    )
    parser.add_argument(
        "-t", "--time", dest="scroll_time",
        help="Scroll cursor lifetime (default: 1m)",
    )
    parser.add_argument(
        "--no-settings", dest="copy_settings", action="store_false", default=None,
        help="Do not copy shard and replica settings from the source",
    )
    parser.add_argument(
        "-f", "--force", action="store_true", default=None,
        help="Delete destination indexes before copying",
    )
    parser.add_argument("--shards", type=int, help="Override the shard count for every index")
    parser.add_argument(
        "-i", "--indexes",
        help="Comma separated list or pattern of indexes to copy (default: _all)",
    )
    parser.add_argument(
        "-a", "--all", dest="include_all", action="store_true", default=None,
        help="Also copy indexes whose name starts with '.'",
    )
    parser.add_argument("-w", "--workers", type=int, help="Number of bulk writer threads")
    parser.add_argument(
        "--replicate", action="store_true", default=None,
        help="Restore source replica counts once the load has finished",
    )
    parser.add_argument(
        "--green", dest="require_green", action="store_true", default=None,
        help="Wait for green cluster health instead of yellow",
    )
    parser.add_argument(
        "--docs-only", action="store_true", default=None,
        help="Copy documents into existing indexes, skip index creation",
    )
    parser.add_argument(
        "--index-only", action="store_true", default=None,
        help="Create indexes only, do not copy documents",
    )
    parser.add_argument(
        "--bulk-failure",
        choices=[p.value for p in BulkFailurePolicy],
        help="What to do when a bulk write fails (default: drop)",
    )
    parser.add_argument("--bulk-retries", type=int, help="Retries for a failed bulk write")
    parser.add_argument("--flush-bytes", type=int, help="Maximum bulk request size in bytes")
    parser.add_argument("--timeout", dest="request_timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument("--config", help="YAML file with default options")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = MigrateConfig.load(args.config) if args.config else MigrateConfig()
        config.merge(vars(args))
        config.validate()
    except ValueError as exc:
        parser.error(str(exc))

    try:
        result = run_migration(config)
    except MigrationError as exc:
        print(exc)
        return 1

    print(f"Indexed {result.documents_written} documents")
    if result.error_count:
        logger.warning("%d error(s) reported during migration", result.error_count)
    return 1 if result.aborted else 0


if __name__ == "__main__":
    sys.exit(main())

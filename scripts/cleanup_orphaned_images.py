"""Delete uploaded images nobody claimed within the retention window."""

from __future__ import annotations

import argparse
from dataclasses import asdict
from typing import Iterable, Optional, Sequence

from partner_me.core.config import get_settings
from partner_me.media.service import CleanupStats, cleanup_orphaned_images
from partner_me.storage.db import get_session_factory


def _format_report(stats: CleanupStats) -> Iterable[str]:
    for key, value in asdict(stats).items():
        yield f"{key}={value}"


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Remove orphaned Partner Me images.")
    parser.add_argument(
        "--retention-hours",
        type=int,
        default=get_settings().orphan_image_retention_hours,
        help="Only images older than this many hours are removed.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum images to process in one run.")
    parser.add_argument("--dry-run", action="store_true", help="Report orphans without deleting anything.")
    args = parser.parse_args(argv)

    if args.retention_hours <= 0:
        raise ValueError("--retention-hours must be positive")
    if args.limit is not None and args.limit <= 0:
        raise ValueError("--limit must be positive")

    session = get_session_factory()()
    try:
        stats = cleanup_orphaned_images(
            session,
            retention_hours=args.retention_hours,
            limit=args.limit,
            dry_run=args.dry_run,
        )
    finally:
        session.close()

    for line in _format_report(stats):
        print(line)
    return 1 if stats.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())

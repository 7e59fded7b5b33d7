#!/usr/bin/env python3
"""Apply the audit retention window: drop stored evaluations past a given age."""

import argparse
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

from vendor_intake.models import IntakeDatabase

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("purge-evaluations")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Remove evaluation audit records (raw model replies included) "
        "older than the retention window. Catalog products are kept."
    )
    parser.add_argument("--db", type=Path, default=Path("vendor_catalog.db"))
    parser.add_argument("--days", type=int, default=90, help="Retention window in days")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would go")
    args = parser.parse_args()

    if not args.db.exists():
        logger.error(f"Database not found: {args.db}")
        return 1

    cutoff = datetime.now(UTC) - timedelta(days=args.days)
    count = IntakeDatabase(args.db).purge_evaluations(cutoff, dry_run=args.dry_run)
    action = "Would remove" if args.dry_run else "Removed"
    logger.info(f"{action} {count} evaluation(s) created before {cutoff:%Y-%m-%d}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

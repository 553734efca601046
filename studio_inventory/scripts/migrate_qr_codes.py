#!/usr/bin/env python3
"""Recompute every active item's QR code from its equipment id.

Safe to run repeatedly: items already carrying ``EQ-NNNNN`` for their id are
skipped.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import Equipment
from studio_inventory.services.qr_code_service import generate_qr_code

logger = logging.getLogger("studio_inventory.scripts.migrate_qr_codes")


@dataclass
class QRMigrationResult:
    updated: int = 0
    skipped: int = 0
    changes: list[tuple[int, str | None, str]] = field(default_factory=list)


def migrate_qr_codes(db: Session, dry_run: bool = False) -> QRMigrationResult:
    result = QRMigrationResult()
    items = db.execute(
        select(Equipment).where(Equipment.is_active == True).order_by(Equipment.id)
    ).scalars().all()

    for item in items:
        new_code = generate_qr_code(item.id)
        if item.qr_code == new_code:
            result.skipped += 1
            continue
        result.changes.append((item.id, item.qr_code, new_code))
        result.updated += 1
        if not dry_run:
            item.qr_code = new_code

    if dry_run:
        db.rollback()
    else:
        db.commit()
    return result


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute equipment QR codes (EQ-NNNNN)")
    parser.add_argument("--db-url", default=os.environ.get("INVENTORY_DB_URL", ""))
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--show", type=int, default=10, help="Number of changes to print")
    args = parser.parse_args()

    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("INVENTORY_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    engine = create_engine(db_url, pool_pre_ping=True, future=True)
    with Session(engine) as db:
        result = migrate_qr_codes(db, dry_run=args.dry_run)

    for equipment_id, old_code, new_code in result.changes[: max(args.show, 0)]:
        print(f"ID {equipment_id}: {old_code or '<none>'} -> {new_code}")
    if len(result.changes) > args.show:
        print(f"... {len(result.changes) - args.show} more")

    mode = "would update" if args.dry_run else "updated"
    print(f"{mode}={result.updated} skipped={result.skipped}")
    logger.info("QR migration finished (dry_run=%s updated=%s skipped=%s)", args.dry_run, result.updated, result.skipped)
    return 0


if __name__ == "__main__":
    sys.exit(main())

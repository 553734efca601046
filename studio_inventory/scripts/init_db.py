#!/usr/bin/env python3
"""Create the inventory schema and seed the default categories."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from studio_inventory.db.base import Base
from studio_inventory.models.inventory_models import Category, User

logger = logging.getLogger("studio_inventory.scripts.init_db")

DEFAULT_CATEGORIES = [
    ("Strobe", "Strobe equipment", "#F38181"),
    ("Camera", "Camera", "#4ECDC4"),
    ("Misc", "Misc", "#DDA0DD"),
    ("Lens", "Lenses", "#45B7D1"),
    ("Drone", "Drones", "#FFB6C1"),
    ("Battery", "Batteries", "#FFEAA7"),
    ("Remote", "Remotes", "#96CEB4"),
    ("Modifier", "Lighting Modifiers", "#C7CEEA"),
    ("Stabilizer", "Camera Stabilizers", "#98D8C8"),
    ("Microphone", "Mics", "#FF6B6B"),
    ("Stand", "Lighting Stands", "#A8E6CF"),
    ("Grip", "Grip Equipment", "#87CEEB"),
    ("Video Light", "Video Lights", "#FFD93D"),
    ("Camera Platform", "Camera Platforms", "#6BCB77"),
    ("Storage", "Storage", "#FDA7DF"),
    ("Camera Rig", "Camera Rigs", "#FF8787"),
    ("Lens Filter", "Lens Filters", "#B4E7CE"),
]


def init_db(engine: Engine, seed: bool = True) -> int:
    """Create missing tables and seed defaults. Returns the number of categories added."""
    Base.metadata.create_all(engine)
    if not seed:
        return 0

    added = 0
    with Session(engine) as db:
        existing = set(db.execute(select(Category.name)).scalars().all())
        for name, description, color in DEFAULT_CATEGORIES:
            if name in existing:
                continue
            db.add(Category(name=name, description=description, color=color))
            added += 1
        if not db.execute(select(User.id).where(User.username == "admin")).first():
            db.add(
                User(
                    username="admin",
                    email="admin@studio.local",
                    full_name="System Administrator",
                    role="admin",
                    department="IT",
                )
            )
        db.commit()
    logger.info("Schema ready; %s default categories added", added)
    return added


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the studio inventory schema")
    parser.add_argument("--db-url", default=os.environ.get("INVENTORY_DB_URL", ""))
    parser.add_argument("--no-seed", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("INVENTORY_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    engine = create_engine(db_url, pool_pre_ping=True, future=True)
    added = init_db(engine, seed=not args.no_seed)
    print(f"Schema ready. Categories added: {added}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Database overview and integrity checks for the studio inventory."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from studio_inventory.services.barcode_service import validate_barcode
from studio_inventory.services.qr_code_service import generate_qr_code


EXPECTED_TABLES = [
    "users",
    "categories",
    "equipment",
    "transactions",
    "maintenance_records",
    "damage_reports",
    "activity_log",
    "barcode_sequences",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "equipment": ["id", "name", "serial_number", "barcode", "qr_code", "category_id", "purchase_date", "status", "needs_relabeling", "is_active"],
    "transactions": ["id", "equipment_id", "user_id", "transaction_type", "batch_id", "expected_return_date", "actual_return_date", "purpose"],
    "barcode_sequences": ["type_code", "year", "last_value"],
    "activity_log": ["id", "user_id", "action", "entity_type", "entity_id", "changes_json", "created_at"],
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def _rows(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).all()


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_column_checks(engine: Engine) -> list[CheckResult]:
    inspector = inspect(engine)
    present = set(inspector.get_table_names())
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in present:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = {column["name"] for column in inspector.get_columns(table)}
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    checks: list[CheckResult] = []

    multiple_open = _scalar(
        engine,
        """
        SELECT COUNT(*)
        FROM (
            SELECT equipment_id
            FROM transactions
            WHERE actual_return_date IS NULL
            GROUP BY equipment_id
            HAVING COUNT(*) > 1
        ) d
        """,
    )
    checks.append(
        CheckResult(
            "transactions:multiple_open_per_item",
            int(multiple_open or 0) == 0,
            f"count={int(multiple_open or 0)}",
        )
    )

    duplicate_barcodes = _scalar(
        engine,
        """
        SELECT COUNT(*)
        FROM (
            SELECT barcode
            FROM equipment
            WHERE is_active = :active AND barcode IS NOT NULL
            GROUP BY barcode
            HAVING COUNT(*) > 1
        ) d
        """,
        {"active": True},
    )
    checks.append(
        CheckResult(
            "equipment:duplicate_barcode",
            int(duplicate_barcodes or 0) == 0,
            f"count={int(duplicate_barcodes or 0)}",
        )
    )

    rows = _rows(engine, "SELECT id, barcode, qr_code FROM equipment WHERE is_active = :active", {"active": True})
    malformed_barcodes = sum(1 for _, barcode, _ in rows if barcode and not validate_barcode(barcode))
    stale_qr_codes = sum(1 for equipment_id, _, qr_code in rows if qr_code != generate_qr_code(equipment_id))
    checks.append(
        CheckResult("equipment:malformed_barcode", malformed_barcodes == 0, f"count={malformed_barcodes}")
    )
    checks.append(
        CheckResult("equipment:stale_qr_code", stale_qr_codes == 0, f"count={stale_qr_codes}")
    )
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    present = set(inspect(engine).get_table_names())
    for table in EXPECTED_TABLES:
        if table not in present:
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def _print_sequences(engine: Engine) -> None:
    _print_section("Barcode Sequences")
    for type_code, year, last_value in _rows(
        engine, "SELECT type_code, year, last_value FROM barcode_sequences ORDER BY type_code, year"
    ):
        print(f"  - {type_code}-??{year}: last={last_value}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Studio inventory DB overview")
    parser.add_argument("--db-url", default=os.environ.get("INVENTORY_DB_URL", ""))
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("INVENTORY_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    existence = run_existence_checks(engine)
    _print_results("Table Existence", existence)
    _print_results("Column Checks", run_column_checks(engine))
    if all(check.ok for check in existence):
        _print_results("Integrity Checks", run_integrity_checks(engine))
        _print_sequences(engine)
    _print_row_counts(engine)
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import Equipment, Transaction

CHECKOUT = "checkout"
CHECKIN = "checkin"
RESERVATION = "reservation"
MAINTENANCE = "maintenance"
TRANSACTION_TYPES = {CHECKOUT, CHECKIN, RESERVATION, MAINTENANCE}


class EquipmentStatus(str, Enum):
    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"
    MAINTENANCE = "maintenance"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class ResolvedStatus:
    status: EquipmentStatus
    is_overdue: bool = False
    transaction: Optional[Transaction] = None

    @property
    def display_status(self) -> EquipmentStatus:
        # Overdue only ever decorates a checkout.
        return EquipmentStatus.OVERDUE if self.is_overdue else self.status


def _as_date(value: date | datetime | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def is_overdue(transaction: Transaction | None, today: date | None = None) -> bool:
    if transaction is None or transaction.actual_return_date is not None:
        return False
    if transaction.transaction_type != CHECKOUT:
        return False
    expected = _as_date(transaction.expected_return_date)
    if expected is None:
        return False
    return expected < (today or date.today())


def resolve_status(
    equipment: Equipment,
    open_transaction: Transaction | None,
    today: date | None = None,
) -> ResolvedStatus:
    """Derive the checkout status of ``equipment`` from its latest open transaction.

    Pure: nothing is read from or written to the database. A transaction that
    is closed or belongs to another item counts as no open transaction.
    """
    if (
        open_transaction is None
        or open_transaction.actual_return_date is not None
        or (equipment is not None and open_transaction.equipment_id != equipment.id)
    ):
        return ResolvedStatus(status=EquipmentStatus.AVAILABLE)

    if open_transaction.transaction_type == CHECKOUT:
        return ResolvedStatus(
            status=EquipmentStatus.CHECKED_OUT,
            is_overdue=is_overdue(open_transaction, today),
            transaction=open_transaction,
        )
    if open_transaction.transaction_type == MAINTENANCE:
        return ResolvedStatus(status=EquipmentStatus.MAINTENANCE, transaction=open_transaction)
    return ResolvedStatus(status=EquipmentStatus.AVAILABLE, transaction=open_transaction)


def _latest_open_ids():
    return (
        select(func.max(Transaction.id).label("transaction_id"))
        .where(Transaction.actual_return_date.is_(None))
        .group_by(Transaction.equipment_id)
    )


def find_open_transaction(db: Session, equipment_id: int) -> Transaction | None:
    return db.execute(
        select(Transaction)
        .where(Transaction.equipment_id == equipment_id)
        .where(Transaction.actual_return_date.is_(None))
        .order_by(Transaction.id.desc())
        .limit(1)
    ).scalars().first()


def find_open_transactions(db: Session, equipment_ids: Iterable[int]) -> dict[int, Transaction]:
    ids = [equipment_id for equipment_id in equipment_ids if equipment_id is not None]
    if not ids:
        return {}
    latest = _latest_open_ids().where(Transaction.equipment_id.in_(ids)).subquery()
    rows = db.execute(
        select(Transaction).join(latest, Transaction.id == latest.c.transaction_id)
    ).scalars().all()
    return {row.equipment_id: row for row in rows}


def get_equipment_status(db: Session, equipment: Equipment, today: date | None = None) -> ResolvedStatus:
    return resolve_status(equipment, find_open_transaction(db, equipment.id), today)


def latest_open_transaction_subquery():
    """Latest open transaction per equipment item, for joins in list queries."""
    latest = _latest_open_ids().subquery()
    return (
        select(Transaction)
        .join(latest, Transaction.id == latest.c.transaction_id)
        .subquery()
    )

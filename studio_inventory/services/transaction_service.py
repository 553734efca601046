from __future__ import annotations

import logging
import secrets
import string
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from studio_inventory.models.inventory_models import Equipment, Transaction
from studio_inventory.services.equipment_service import CHECKOUT_ALLOWED_STATUSES
from studio_inventory.services.status_service import (
    CHECKOUT,
    MAINTENANCE,
    EquipmentStatus,
    find_open_transaction,
    get_equipment_status,
    is_overdue,
)
from studio_inventory.services.user_service import get_active_user

logger = logging.getLogger("studio_inventory.transactions")

_BATCH_ALPHABET = string.ascii_uppercase + string.digits


class TransactionError(RuntimeError):
    pass


class EquipmentNotFoundError(TransactionError):
    pass


def generate_batch_id(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    suffix = "".join(secrets.choice(_BATCH_ALPHABET) for _ in range(6))
    return f"{stamp}-{suffix}"


def normalize_ids(value: int | Iterable[int]) -> list[int]:
    if isinstance(value, int):
        return [value]
    return list(value)


def _get_active_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.execute(
        select(Equipment).where(Equipment.id == equipment_id, Equipment.is_active == True)
    ).scalars().first()
    if not equipment:
        raise EquipmentNotFoundError(f"Equipment not found: {equipment_id}")
    return equipment


def checkout_equipment(
    db: Session,
    equipment_ids: list[int],
    user_id: int,
    expected_return_date: datetime,
    purpose: str,
    notes: str | None = None,
    created_by: int | None = None,
) -> dict:
    """Open one checkout transaction per item under a shared batch id. Caller commits."""
    user = get_active_user(db, user_id)
    if not user:
        raise TransactionError("User not found")

    batch_id = generate_batch_id()
    checked_out = []
    for equipment_id in equipment_ids:
        equipment = _get_active_equipment(db, equipment_id)
        resolved = get_equipment_status(db, equipment)
        if resolved.status != EquipmentStatus.AVAILABLE or equipment.status not in CHECKOUT_ALLOWED_STATUSES:
            shown = resolved.status.value if resolved.status != EquipmentStatus.AVAILABLE else equipment.status
            raise TransactionError(
                f"Cannot checkout equipment '{equipment.name}' with status '{shown}'. "
                "Equipment must be 'available' or 'needs_maintenance' to checkout."
            )

        transaction = Transaction(
            equipment_id=equipment.id,
            user_id=user_id,
            transaction_type=CHECKOUT,
            batch_id=batch_id,
            checkout_date=datetime.now(),
            expected_return_date=expected_return_date,
            condition_on_checkout=equipment.condition,
            purpose=purpose,
            notes=notes,
            created_by=created_by or user_id,
            created_at=datetime.now(),
        )
        db.add(transaction)
        db.flush()
        checked_out.append({"id": equipment.id, "name": equipment.name, "transactionID": transaction.id})
        logger.info("Checked out equipment %s to user %s (batch=%s)", equipment.id, user_id, batch_id)

    return {
        "batchID": batch_id,
        "transactionCount": len(checked_out),
        "equipment": checked_out,
        "userName": user.full_name,
    }


def checkin_equipment(
    db: Session,
    equipment_ids: list[int],
    checked_in_by: int,
    return_location: str = "studio",
    condition_on_return: str | None = None,
    notes: str | None = None,
) -> dict:
    """Close the open checkout of each item. Only the borrower or an admin may check in."""
    user = get_active_user(db, checked_in_by)
    if not user:
        raise TransactionError("User checking in not found or inactive")
    is_admin = user.role == "admin"

    batch_id = generate_batch_id()
    checked_in = []
    for equipment_id in equipment_ids:
        transaction = db.execute(
            select(Transaction)
            .options(selectinload(Transaction.User), selectinload(Transaction.Equipment))
            .where(Transaction.equipment_id == equipment_id)
            .where(Transaction.transaction_type == CHECKOUT)
            .where(Transaction.actual_return_date.is_(None))
            .order_by(Transaction.checkout_date.desc(), Transaction.id.desc())
            .limit(1)
        ).scalars().first()
        if not transaction:
            raise TransactionError(f"No active checkout found for equipment ID {equipment_id}")

        borrower_name = transaction.User.full_name if transaction.User else "the borrower"
        equipment_name = transaction.Equipment.name if transaction.Equipment else str(equipment_id)
        if transaction.user_id != checked_in_by and not is_admin:
            raise TransactionError(
                f"Only {borrower_name} or an admin can check in this equipment. "
                f"'{equipment_name}' was checked out by {borrower_name}."
            )

        transaction.actual_return_date = datetime.now()
        transaction.condition_on_return = condition_on_return
        if notes:
            transaction.notes = f"{transaction.notes}\n--- Return Notes ---\n{notes}" if transaction.notes else notes

        equipment = transaction.Equipment
        if equipment is not None:
            equipment.location = return_location
            if condition_on_return:
                equipment.condition = condition_on_return
            equipment.updated_at = datetime.now()

        checked_in.append({"id": equipment_id, "name": equipment_name, "transactionID": transaction.id})
        logger.info("Checked in equipment %s by user %s (batch=%s)", equipment_id, checked_in_by, batch_id)

    db.flush()
    return {
        "batchID": batch_id,
        "transactionCount": len(checked_in),
        "equipment": checked_in,
        "userName": user.full_name,
    }


def start_maintenance(
    db: Session,
    equipment_id: int,
    user_id: int,
    expected_return_date: datetime | None = None,
    notes: str | None = None,
) -> Transaction:
    equipment = _get_active_equipment(db, equipment_id)
    if find_open_transaction(db, equipment.id) is not None:
        raise TransactionError(f"Equipment '{equipment.name}' already has an open transaction.")
    transaction = Transaction(
        equipment_id=equipment.id,
        user_id=user_id,
        transaction_type=MAINTENANCE,
        checkout_date=datetime.now(),
        expected_return_date=expected_return_date,
        condition_on_checkout=equipment.condition,
        notes=notes,
        created_by=user_id,
        created_at=datetime.now(),
    )
    db.add(transaction)
    db.flush()
    return transaction


def end_maintenance(
    db: Session,
    equipment_id: int,
    condition_on_return: str | None = None,
    notes: str | None = None,
) -> Transaction:
    equipment = _get_active_equipment(db, equipment_id)
    transaction = find_open_transaction(db, equipment.id)
    if transaction is None or transaction.transaction_type != MAINTENANCE:
        raise TransactionError(f"Equipment '{equipment.name}' is not in maintenance.")
    transaction.actual_return_date = datetime.now()
    transaction.condition_on_return = condition_on_return
    if notes:
        transaction.notes = f"{transaction.notes}\n{notes}" if transaction.notes else notes
    if condition_on_return:
        equipment.condition = condition_on_return
    equipment.updated_at = datetime.now()
    db.flush()
    return transaction


def serialize_transaction(transaction: Transaction, today: date | None = None) -> dict:
    equipment = transaction.Equipment
    user = transaction.User
    created_by = transaction.CreatedBy
    return {
        "id": transaction.id,
        "equipmentID": transaction.equipment_id,
        "userID": transaction.user_id,
        "transactionType": transaction.transaction_type,
        "batchID": transaction.batch_id,
        "checkoutDate": transaction.checkout_date,
        "expectedReturnDate": transaction.expected_return_date,
        "actualReturnDate": transaction.actual_return_date,
        "conditionOnCheckout": transaction.condition_on_checkout,
        "conditionOnReturn": transaction.condition_on_return,
        "purpose": transaction.purpose,
        "location": transaction.location,
        "notes": transaction.notes,
        "createdAt": transaction.created_at,
        "equipmentName": equipment.name if equipment else None,
        "serialNumber": equipment.serial_number if equipment else None,
        "barcode": equipment.barcode if equipment else None,
        "userName": user.full_name if user else None,
        "userEmail": user.email if user else None,
        "createdByName": created_by.full_name if created_by else None,
        "isOverdue": is_overdue(transaction, today),
    }


def list_overdue(db: Session, today: date | None = None) -> list[dict]:
    today = today or date.today()
    rows = db.execute(
        select(Transaction)
        .options(selectinload(Transaction.Equipment), selectinload(Transaction.User))
        .where(Transaction.transaction_type == CHECKOUT)
        .where(Transaction.actual_return_date.is_(None))
        .where(Transaction.expected_return_date.is_not(None))
        .order_by(Transaction.expected_return_date.asc())
    ).scalars().all()

    overdue = []
    for transaction in rows:
        if not is_overdue(transaction, today):
            continue
        payload = serialize_transaction(transaction, today)
        payload["daysOverdue"] = (today - transaction.expected_return_date.date()).days
        payload["userPhone"] = transaction.User.phone if transaction.User else None
        overdue.append(payload)
    return overdue

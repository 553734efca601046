from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import Transaction, User
from studio_inventory.services.status_service import CHECKOUT

USER_FIELDS = {
    "username": "username",
    "email": "email",
    "fullName": "full_name",
    "role": "role",
    "phone": "phone",
    "department": "department",
}


def get_active_user(db: Session, user_id: int | None) -> User | None:
    if not user_id:
        return None
    return db.execute(
        select(User).where(User.id == user_id, User.is_active == True)
    ).scalars().first()


def serialize_user(user: User, total_checkouts: int | None = None, active_checkouts: int | None = None) -> dict:
    payload = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
        "phone": user.phone,
        "department": user.department,
        "isActive": bool(user.is_active),
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }
    if total_checkouts is not None:
        payload["totalCheckouts"] = total_checkouts
        payload["activeCheckouts"] = active_checkouts or 0
    return payload


def list_users(db: Session, active_only: bool = True) -> list[dict]:
    """Users ordered by name, with lifetime and currently open checkout counts."""
    total = func.count(func.distinct(Transaction.id))
    active = func.count(
        func.distinct(case((Transaction.actual_return_date.is_(None), Transaction.id)))
    )
    stmt = (
        select(User, total, active)
        .outerjoin(
            Transaction,
            and_(Transaction.user_id == User.id, Transaction.transaction_type == CHECKOUT),
        )
        .group_by(User.id)
        .order_by(User.full_name)
    )
    if active_only:
        stmt = stmt.where(User.is_active == True)
    return [serialize_user(user, total_count, active_count) for user, total_count, active_count in db.execute(stmt).all()]


def count_active_checkouts(db: Session, user_id: int) -> int:
    return db.execute(
        select(func.count(Transaction.id))
        .where(Transaction.user_id == user_id)
        .where(Transaction.transaction_type == CHECKOUT)
        .where(Transaction.actual_return_date.is_(None))
    ).scalar() or 0


def apply_user_update(user: User, changes: dict[str, Any]) -> dict[str, dict]:
    diff: dict[str, dict] = {}
    for field, value in changes.items():
        column = USER_FIELDS[field]
        before = getattr(user, column)
        if before != value:
            diff[column] = {"from": before, "to": value}
        setattr(user, column, value)
    user.updated_at = datetime.now()
    return diff

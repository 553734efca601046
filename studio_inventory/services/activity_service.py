from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import ActivityLog, User

logger = logging.getLogger("studio_inventory.activity")


def get_request_info(request: Request | None) -> dict[str, str | None]:
    if request is None:
        return {"ip_address": None, "user_agent": None}
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    if not ip_address and request.client:
        ip_address = request.client.host
    return {"ip_address": ip_address, "user_agent": request.headers.get("user-agent")}


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActivityLog:
    """Queue an activity row on ``db``; it is committed with the caller's work."""
    changes_json = json.dumps(changes, default=str) if changes else None
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes_json=changes_json,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=datetime.now(),
    )
    db.add(entry)
    logger.info(
        "User %s %s %s %s%s",
        user_id or "SYSTEM",
        action,
        entity_type,
        entity_id if entity_id is not None else "N/A",
        f" - {changes_json}" if changes_json else "",
    )
    return entry


def _parse_changes(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (ValueError, json.JSONDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def serialize_activity(entry: ActivityLog, user: User | None = None) -> dict:
    return {
        "id": entry.id,
        "userID": entry.user_id,
        "userName": user.full_name if user else None,
        "username": user.username if user else None,
        "action": entry.action,
        "entityType": entry.entity_type,
        "entityID": entry.entity_id,
        "changes": _parse_changes(entry.changes_json),
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "createdAt": entry.created_at,
    }


def get_activity_logs(
    db: Session,
    user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 100,
) -> list[dict]:
    stmt = select(ActivityLog, User).outerjoin(User, User.id == ActivityLog.user_id)
    if user_id:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    if action:
        stmt = stmt.where(ActivityLog.action == action)
    if entity_type:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(ActivityLog.entity_id == entity_id)
    if start_date:
        stmt = stmt.where(ActivityLog.created_at >= start_date)
    if end_date:
        stmt = stmt.where(ActivityLog.created_at <= end_date)
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(max(limit, 1))
    return [serialize_activity(entry, user) for entry, user in db.execute(stmt).all()]


def find_batch_activity(db: Session, batch_id: str) -> dict | None:
    entry = db.execute(
        select(ActivityLog)
        .where(ActivityLog.entity_type == "transaction_batch")
        .where(ActivityLog.changes_json.like(f'%"batch_id": "{batch_id}"%'))
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(1)
    ).scalars().first()
    if not entry:
        return None
    user = db.get(User, entry.user_id) if entry.user_id else None
    return serialize_activity(entry, user)

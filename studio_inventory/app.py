import json
import logging
import math
import os
from dataclasses import asdict
from datetime import date, datetime

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import case, func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    pass

from studio_inventory.db.deps import get_inventory_db
from studio_inventory.models.inventory_models import Category, DamageReport, Equipment, MaintenanceRecord, Transaction, User
from studio_inventory.schemas.equipment import EquipmentCreate, EquipmentUpdate
from studio_inventory.schemas.records import CategoryCreate, DamageReportCreate, MaintenanceRecordCreate
from studio_inventory.schemas.transactions import (
    CheckinRequest,
    CheckoutRequest,
    MaintenanceEndRequest,
    MaintenanceStartRequest,
)
from studio_inventory.schemas.users import UserCreate, UserUpdate
from studio_inventory.services.activity_service import find_batch_activity, get_activity_logs, get_request_info, log_activity
from studio_inventory.services.barcode_service import parse_barcode, validate_barcode
from studio_inventory.services.equipment_service import (
    apply_equipment_update,
    create_equipment_units,
    has_open_transaction,
    map_equipment_field,
    serial_exists,
    serialize_equipment,
)
from studio_inventory.services.qr_code_service import generate_qr_code, generate_qr_image, parse_qr_code
from studio_inventory.services.status_service import (
    CHECKOUT,
    MAINTENANCE,
    find_open_transactions,
    get_equipment_status,
    latest_open_transaction_subquery,
    resolve_status,
)
from studio_inventory.services.transaction_service import (
    EquipmentNotFoundError,
    TransactionError,
    checkin_equipment,
    checkout_equipment,
    end_maintenance,
    list_overdue,
    normalize_ids,
    serialize_transaction,
    start_maintenance,
)
from studio_inventory.services.user_service import (
    apply_user_update,
    count_active_checkouts,
    get_active_user,
    list_users,
    serialize_user,
)

logger = logging.getLogger("studio_inventory.api")

app = FastAPI()


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"]
)

EQUIPMENT_SORT_FIELDS = {"name", "serial_number", "category_name", "status", "checkout_date", "expected_return_date"}


def _equipment_or_404(db: Session, equipment_id: int) -> Equipment:
    equipment = db.execute(
        select(Equipment)
        .options(selectinload(Equipment.Category))
        .where(Equipment.id == equipment_id, Equipment.is_active == True)
    ).scalars().first()
    if not equipment:
        raise HTTPException(status_code=404, detail="Equipment not found")
    return equipment


def _serialize_with_status(db: Session, equipment: Equipment) -> dict:
    return serialize_equipment(equipment, get_equipment_status(db, equipment))


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_inventory_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/equipment")
def get_equipment(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    category: int | None = None,
    status: str | None = None,
    search: str | None = None,
    sort: str = "name",
    order: str = "ASC",
    db: Session = Depends(get_inventory_db),
):
    open_tx = latest_open_transaction_subquery()
    derived_status = case(
        (open_tx.c.transaction_type == CHECKOUT, "checked_out"),
        (open_tx.c.transaction_type == MAINTENANCE, "maintenance"),
        else_=Equipment.status,
    )
    stmt = (
        select(Equipment)
        .outerjoin(Category, Category.id == Equipment.category_id)
        .outerjoin(open_tx, open_tx.c.equipment_id == Equipment.id)
        .where(Equipment.is_active == True)
    )

    if category:
        stmt = stmt.where(Equipment.category_id == category)

    if status:
        if status == "checked_out":
            stmt = stmt.where(open_tx.c.transaction_type == CHECKOUT)
        elif status == "overdue":
            stmt = stmt.where(open_tx.c.transaction_type == CHECKOUT).where(
                open_tx.c.expected_return_date < datetime.combine(date.today(), datetime.min.time())
            )
        elif status == "maintenance":
            stmt = stmt.where(open_tx.c.transaction_type == MAINTENANCE)
        else:
            stmt = stmt.where(
                or_(open_tx.c.id.is_(None), open_tx.c.transaction_type.not_in([CHECKOUT, MAINTENANCE]))
            ).where(Equipment.status == status)

    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Equipment.name).like(pattern),
                func.lower(Equipment.serial_number).like(pattern),
                func.lower(Equipment.barcode).like(pattern),
                func.lower(Equipment.qr_code).like(pattern),
                func.lower(Equipment.model).like(pattern),
                func.lower(Equipment.manufacturer).like(pattern),
                func.lower(Category.name).like(pattern),
            )
        )

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

    sort_columns = {
        "name": Equipment.name,
        "serial_number": Equipment.serial_number,
        "category_name": Category.name,
        "status": derived_status,
        "checkout_date": open_tx.c.checkout_date,
        "expected_return_date": open_tx.c.expected_return_date,
    }
    sort_column = sort_columns[sort if sort in EQUIPMENT_SORT_FIELDS else "name"]
    sort_column = sort_column.desc() if order.upper() == "DESC" else sort_column.asc()
    stmt = (
        stmt.options(selectinload(Equipment.Category))
        .order_by(sort_column, Equipment.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    items = db.execute(stmt).scalars().all()

    open_transactions = find_open_transactions(db, [item.id for item in items])
    return {
        "data": [serialize_equipment(item, resolve_status(item, open_transactions.get(item.id))) for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


@app.get("/api/equipment/{equipment_id}")
def get_equipment_item(equipment_id: int, db: Session = Depends(get_inventory_db)):
    equipment = _equipment_or_404(db, equipment_id)
    return _serialize_with_status(db, equipment)


@app.post("/api/equipment", status_code=201)
def create_equipment(payload: EquipmentCreate, request: Request, db: Session = Depends(get_inventory_db)):
    excluded = {"serialNumber", "serialNumbers", "quantity", "createdBy"}
    fields = {
        map_equipment_field(field): value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if field not in excluded
    }
    try:
        items = create_equipment_units(
            db,
            fields,
            quantity=payload.quantity,
            serial_number=payload.serialNumber,
            serial_numbers=payload.serialNumbers,
        )
        for count, item in enumerate(items, start=1):
            log_activity(
                db,
                action="create",
                entity_type="equipment",
                entity_id=item.id,
                user_id=payload.createdBy,
                changes={
                    "name": item.name,
                    "barcode": item.barcode,
                    "category_id": item.category_id,
                    "count": f"{count}/{payload.quantity}",
                },
                **get_request_info(request),
            )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Equipment violates a uniqueness constraint.") from exc

    logger.info("Created %s equipment item(s)", len(items))
    serialized = [_serialize_with_status(db, item) for item in items]
    if payload.quantity == 1:
        return serialized[0]
    return {"items": serialized, "count": payload.quantity}


@app.put("/api/equipment/{equipment_id}")
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpdate,
    request: Request,
    db: Session = Depends(get_inventory_db),
):
    equipment = _equipment_or_404(db, equipment_id)
    changes = {
        map_equipment_field(field): value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if field != "updatedBy"
    }
    if not changes:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    if "status" in changes and has_open_transaction(db, equipment.id):
        raise HTTPException(
            status_code=400,
            detail="Cannot change status while equipment is checked out. Please check in the equipment first.",
        )
    if changes.get("serial_number") and serial_exists(db, changes["serial_number"], exclude_id=equipment.id):
        raise HTTPException(status_code=400, detail="Serial number already exists")

    diff = apply_equipment_update(db, equipment, changes)
    if diff:
        log_activity(
            db,
            action="update",
            entity_type="equipment",
            entity_id=equipment.id,
            user_id=payload.updatedBy,
            changes=diff,
            **get_request_info(request),
        )
    db.commit()
    db.refresh(equipment)
    return _serialize_with_status(db, equipment)


@app.delete("/api/equipment/{equipment_id}")
def delete_equipment(
    equipment_id: int,
    request: Request,
    deleted_by: int | None = Query(None, alias="deletedBy"),
    db: Session = Depends(get_inventory_db),
):
    equipment = _equipment_or_404(db, equipment_id)
    if has_open_transaction(db, equipment.id):
        raise HTTPException(status_code=400, detail="Cannot delete equipment that is currently checked out")

    equipment.is_active = False
    equipment.updated_at = datetime.now()
    log_activity(
        db,
        action="delete",
        entity_type="equipment",
        entity_id=equipment.id,
        user_id=deleted_by,
        changes={"name": equipment.name, "barcode": equipment.barcode},
        **get_request_info(request),
    )
    db.commit()
    return {"message": "Equipment deleted successfully"}


@app.get("/api/equipment/{equipment_id}/qrcode")
def get_equipment_qr_code(equipment_id: int, db: Session = Depends(get_inventory_db)):
    equipment = _equipment_or_404(db, equipment_id)
    qr_code = equipment.qr_code or generate_qr_code(equipment.id)
    try:
        image = generate_qr_image(qr_code)
    except Exception as exc:
        logger.exception("QR image rendering failed for equipment %s", equipment.id)
        raise HTTPException(status_code=500, detail="Failed to generate QR code") from exc
    return {"qrCode": qr_code, "qrImage": image, "equipmentName": equipment.name}


@app.get("/api/scan/{code}")
def scan_lookup(code: str, db: Session = Depends(get_inventory_db)):
    value = code.strip().upper()
    parsed_qr = parse_qr_code(value)
    if parsed_qr is not None:
        equipment = _equipment_or_404(db, parsed_qr.equipment_id)
        payload = _serialize_with_status(db, equipment)
        payload["scannedAs"] = "qr_code"
        return payload

    if validate_barcode(value):
        equipment = db.execute(
            select(Equipment)
            .options(selectinload(Equipment.Category))
            .where(Equipment.barcode == value, Equipment.is_active == True)
        ).scalars().first()
        if not equipment:
            raise HTTPException(status_code=404, detail="Equipment not found")
        payload = _serialize_with_status(db, equipment)
        payload["scannedAs"] = "barcode"
        payload["barcodeParts"] = asdict(parse_barcode(value))
        return payload

    raise HTTPException(status_code=400, detail="Unrecognized code. Expected EQ-NNNNN or TT-CCYY-NNNNN[-SSSS].")


@app.get("/api/categories")
def get_categories(db: Session = Depends(get_inventory_db)):
    rows = db.execute(
        select(Category, func.count(Equipment.id))
        .outerjoin(Equipment, (Equipment.category_id == Category.id) & (Equipment.is_active == True))
        .group_by(Category.id)
        .order_by(Category.name)
    ).all()
    return [
        {
            "id": category.id,
            "name": category.name,
            "description": category.description,
            "color": category.color,
            "createdAt": category.created_at,
            "equipmentCount": count,
        }
        for category, count in rows
    ]


@app.post("/api/categories", status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_inventory_db)):
    name = payload.name.strip()
    if db.execute(select(Category.id).where(Category.name == name)).first():
        raise HTTPException(status_code=400, detail="Category name already exists")
    category = Category(name=name, description=payload.description, color=payload.color, created_at=datetime.now())
    db.add(category)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Category name already exists") from exc
    db.refresh(category)
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "color": category.color,
        "createdAt": category.created_at,
    }


@app.get("/api/transactions")
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    equipment_id: int | None = Query(None, alias="equipmentID"),
    user_id: int | None = Query(None, alias="userID"),
    transaction_type: str | None = Query(None, alias="type"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    db: Session = Depends(get_inventory_db),
):
    stmt = select(Transaction)
    if equipment_id:
        stmt = stmt.where(Transaction.equipment_id == equipment_id)
    if user_id:
        stmt = stmt.where(Transaction.user_id == user_id)
    if transaction_type:
        stmt = stmt.where(Transaction.transaction_type == transaction_type)
    if start_date:
        stmt = stmt.where(Transaction.created_at >= start_date)
    if end_date:
        stmt = stmt.where(Transaction.created_at <= end_date)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0
    rows = db.execute(
        stmt.options(
            selectinload(Transaction.Equipment),
            selectinload(Transaction.User),
            selectinload(Transaction.CreatedBy),
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).scalars().all()
    return {
        "data": [serialize_transaction(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


@app.get("/api/transactions/overdue")
def get_overdue(db: Session = Depends(get_inventory_db)):
    return list_overdue(db)


@app.get("/api/transactions/batch/{batch_id}")
def get_transaction_batch(batch_id: str, db: Session = Depends(get_inventory_db)):
    rows = db.execute(
        select(Transaction)
        .options(selectinload(Transaction.Equipment), selectinload(Transaction.User))
        .where(Transaction.batch_id == batch_id)
        .order_by(Transaction.created_at.desc(), Transaction.id)
    ).scalars().all()
    if not rows:
        raise HTTPException(status_code=404, detail="Batch not found")
    first = rows[0]
    return {
        "batchID": batch_id,
        "transactionType": first.transaction_type,
        "transactionCount": len(rows),
        "userName": first.User.full_name if first.User else None,
        "userEmail": first.User.email if first.User else None,
        "createdAt": first.created_at,
        "purpose": first.purpose,
        "transactions": [serialize_transaction(row) for row in rows],
        "activityLog": find_batch_activity(db, batch_id),
    }


@app.post("/api/transactions/checkout", status_code=201)
def checkout(payload: CheckoutRequest, request: Request, db: Session = Depends(get_inventory_db)):
    equipment_ids = normalize_ids(payload.equipmentID)
    if not equipment_ids:
        raise HTTPException(status_code=400, detail="Equipment ID(s) required")
    try:
        summary = checkout_equipment(
            db,
            equipment_ids,
            payload.userID,
            payload.expectedReturnDate,
            payload.purpose,
            notes=payload.notes,
            created_by=payload.createdBy,
        )
        log_activity(
            db,
            action="checkout",
            entity_type="transaction_batch",
            user_id=payload.userID,
            changes={
                "batch_id": summary["batchID"],
                "count": summary["transactionCount"],
                "equipment": summary["equipment"],
                "purpose": payload.purpose,
                "expected_return_date": payload.expectedReturnDate,
                "notes": payload.notes,
            },
            **get_request_info(request),
        )
        db.commit()
    except EquipmentNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransactionError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return summary


@app.post("/api/transactions/checkin")
def checkin(payload: CheckinRequest, request: Request, db: Session = Depends(get_inventory_db)):
    equipment_ids = normalize_ids(payload.equipmentID)
    if not equipment_ids:
        raise HTTPException(status_code=400, detail="Equipment ID(s) required")
    try:
        summary = checkin_equipment(
            db,
            equipment_ids,
            payload.checkedInBy,
            return_location=payload.returnLocation,
            condition_on_return=payload.conditionOnReturn,
            notes=payload.notes,
        )
        log_activity(
            db,
            action="checkin",
            entity_type="transaction_batch",
            user_id=payload.checkedInBy,
            changes={
                "batch_id": summary["batchID"],
                "count": summary["transactionCount"],
                "equipment": summary["equipment"],
                "return_location": payload.returnLocation,
                "condition_on_return": payload.conditionOnReturn,
                "notes": payload.notes,
            },
            **get_request_info(request),
        )
        db.commit()
    except TransactionError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return summary


@app.post("/api/transactions/maintenance/start", status_code=201)
def maintenance_start(payload: MaintenanceStartRequest, request: Request, db: Session = Depends(get_inventory_db)):
    try:
        transaction = start_maintenance(
            db,
            payload.equipmentID,
            payload.userID,
            expected_return_date=payload.expectedReturnDate,
            notes=payload.notes,
        )
        log_activity(
            db,
            action="maintenance_start",
            entity_type="equipment",
            entity_id=payload.equipmentID,
            user_id=payload.userID,
            changes={"transaction_id": transaction.id},
            **get_request_info(request),
        )
        db.commit()
    except EquipmentNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransactionError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return serialize_transaction(transaction)


@app.post("/api/transactions/maintenance/end")
def maintenance_end(payload: MaintenanceEndRequest, request: Request, db: Session = Depends(get_inventory_db)):
    try:
        transaction = end_maintenance(
            db,
            payload.equipmentID,
            condition_on_return=payload.conditionOnReturn,
            notes=payload.notes,
        )
        log_activity(
            db,
            action="maintenance_end",
            entity_type="equipment",
            entity_id=payload.equipmentID,
            user_id=payload.userID,
            changes={"transaction_id": transaction.id, "condition_on_return": payload.conditionOnReturn},
            **get_request_info(request),
        )
        db.commit()
    except EquipmentNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransactionError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return serialize_transaction(transaction)


def _serialize_maintenance(record: MaintenanceRecord) -> dict:
    return {
        "id": record.id,
        "equipmentID": record.equipment_id,
        "equipmentName": record.Equipment.name if record.Equipment else None,
        "maintenanceType": record.maintenance_type,
        "description": record.description,
        "cost": record.cost,
        "performedBy": record.performed_by,
        "performedDate": record.performed_date,
        "nextMaintenanceDate": record.next_maintenance_date,
        "notes": record.notes,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }


@app.get("/api/maintenance")
def get_maintenance_records(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    db: Session = Depends(get_inventory_db),
):
    stmt = select(MaintenanceRecord).options(selectinload(MaintenanceRecord.Equipment))
    if equipment_id:
        stmt = stmt.where(MaintenanceRecord.equipment_id == equipment_id)
    records = db.execute(stmt.order_by(MaintenanceRecord.performed_date.desc(), MaintenanceRecord.id.desc())).scalars().all()
    return [_serialize_maintenance(record) for record in records]


@app.post("/api/maintenance", status_code=201)
def create_maintenance_record(payload: MaintenanceRecordCreate, db: Session = Depends(get_inventory_db)):
    _equipment_or_404(db, payload.equipmentID)
    record = MaintenanceRecord(
        equipment_id=payload.equipmentID,
        maintenance_type=payload.maintenanceType,
        description=payload.description,
        cost=payload.cost,
        performed_by=payload.performedBy,
        performed_date=payload.performedDate,
        next_maintenance_date=payload.nextMaintenanceDate,
        notes=payload.notes,
        created_by=payload.createdBy,
        created_at=datetime.now(),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return _serialize_maintenance(record)


def _serialize_damage_report(report: DamageReport) -> dict:
    return {
        "id": report.id,
        "equipmentID": report.equipment_id,
        "equipmentName": report.Equipment.name if report.Equipment else None,
        "reportedBy": report.reported_by,
        "damageDescription": report.damage_description,
        "damageSeverity": report.damage_severity,
        "estimatedRepairCost": report.estimated_repair_cost,
        "repairStatus": report.repair_status,
        "imagePaths": json.loads(report.image_paths) if report.image_paths else [],
        "reportedDate": report.reported_date,
        "resolvedDate": report.resolved_date,
        "notes": report.notes,
    }


@app.get("/api/damage-reports")
def get_damage_reports(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    db: Session = Depends(get_inventory_db),
):
    stmt = select(DamageReport).options(selectinload(DamageReport.Equipment))
    if equipment_id:
        stmt = stmt.where(DamageReport.equipment_id == equipment_id)
    reports = db.execute(stmt.order_by(DamageReport.reported_date.desc(), DamageReport.id.desc())).scalars().all()
    return [_serialize_damage_report(report) for report in reports]


@app.post("/api/damage-reports", status_code=201)
def create_damage_report(payload: DamageReportCreate, request: Request, db: Session = Depends(get_inventory_db)):
    _equipment_or_404(db, payload.equipmentID)
    if not db.get(User, payload.reportedBy):
        raise HTTPException(status_code=400, detail="Reporting user not found")
    report = DamageReport(
        equipment_id=payload.equipmentID,
        reported_by=payload.reportedBy,
        damage_description=payload.damageDescription,
        damage_severity=payload.damageSeverity,
        estimated_repair_cost=payload.estimatedRepairCost,
        repair_status="reported",
        image_paths=json.dumps(payload.imagePaths) if payload.imagePaths else None,
        reported_date=datetime.now(),
        notes=payload.notes,
    )
    db.add(report)
    db.flush()
    log_activity(
        db,
        action="damage_report",
        entity_type="equipment",
        entity_id=payload.equipmentID,
        user_id=payload.reportedBy,
        changes={"damage_report_id": report.id, "severity": payload.damageSeverity},
        **get_request_info(request),
    )
    db.commit()
    db.refresh(report)
    return _serialize_damage_report(report)


@app.get("/api/activity/recent")
def get_recent_activity(limit: int = Query(20, ge=1, le=500), db: Session = Depends(get_inventory_db)):
    return get_activity_logs(db, limit=limit)


@app.get("/api/activity")
def get_activity(
    user_id: int | None = Query(None, alias="userID"),
    action: str | None = None,
    entity_type: str | None = Query(None, alias="entityType"),
    entity_id: int | None = Query(None, alias="entityID"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_inventory_db),
):
    return get_activity_logs(
        db,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


def _require_admin(
    x_user_id: int | None = Header(None, alias="X-User-ID"),
    db: Session = Depends(get_inventory_db),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = get_active_user(db, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def _active_user_or_404(db: Session, user_id: int) -> User:
    user = get_active_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.get("/api/users")
def get_users(active_only: bool = Query(True, alias="activeOnly"), db: Session = Depends(get_inventory_db)):
    return list_users(db, active_only=active_only)


@app.get("/api/users/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_inventory_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_user(user)


@app.post("/api/users", status_code=201)
def create_user(
    payload: UserCreate,
    request: Request,
    admin: User = Depends(_require_admin),
    db: Session = Depends(get_inventory_db),
):
    user = User(
        username=payload.username.strip(),
        email=payload.email,
        full_name=payload.fullName.strip(),
        role=payload.role,
        phone=payload.phone,
        department=payload.department,
        is_active=True,
        created_at=datetime.now(),
        updated_at=datetime.now(),
    )
    db.add(user)
    try:
        db.flush()
        log_activity(
            db,
            action="create",
            entity_type="user",
            entity_id=user.id,
            user_id=admin.id,
            changes={"username": user.username, "role": user.role},
            **get_request_info(request),
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Username or email already exists") from exc
    logger.info("Created user %s (%s)", user.id, user.username)
    return serialize_user(user)


@app.put("/api/users/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    admin: User = Depends(_require_admin),
    db: Session = Depends(get_inventory_db),
):
    user = _active_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    for field in ("username", "email", "fullName", "role"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be empty")

    diff = apply_user_update(user, changes)
    try:
        if diff:
            log_activity(
                db,
                action="update",
                entity_type="user",
                entity_id=user.id,
                user_id=admin.id,
                changes=diff,
                **get_request_info(request),
            )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Username or email already exists") from exc
    return serialize_user(user)


@app.delete("/api/users/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    admin: User = Depends(_require_admin),
    db: Session = Depends(get_inventory_db),
):
    user = _active_user_or_404(db, user_id)
    active = count_active_checkouts(db, user.id)
    if active:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete user with active checkouts. User has {active} equipment checked out.",
        )
    user.is_active = False
    user.updated_at = datetime.now()
    log_activity(
        db,
        action="delete",
        entity_type="user",
        entity_id=user.id,
        user_id=admin.id,
        changes={"username": user.username},
        **get_request_info(request),
    )
    db.commit()
    return {"message": "User deleted successfully"}

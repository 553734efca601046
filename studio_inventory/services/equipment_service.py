from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import Category, Equipment
from studio_inventory.services.barcode_service import generate_barcode
from studio_inventory.services.qr_code_service import generate_qr_code
from studio_inventory.services.status_service import ResolvedStatus, find_open_transaction

CHECKOUT_ALLOWED_STATUSES = {"available", "needs_maintenance"}


class DuplicateSerialError(ValueError):
    pass


def get_category_name(db: Session, category_id: int | None) -> str | None:
    if not category_id:
        return None
    category = db.get(Category, category_id)
    return category.name if category else None


def serial_exists(db: Session, serial_number: str, exclude_id: int | None = None) -> bool:
    stmt = select(Equipment.id).where(
        Equipment.serial_number == serial_number,
        Equipment.is_active == True,
    )
    if exclude_id is not None:
        stmt = stmt.where(Equipment.id != exclude_id)
    return db.execute(stmt).first() is not None


def _unit_serials(quantity: int, serial_number: str | None, serial_numbers: list[str] | None) -> list[str | None]:
    if quantity == 1:
        return [serial_number or None]
    serials: list[str | None] = []
    for index in range(quantity):
        raw = serial_numbers[index] if serial_numbers and index < len(serial_numbers) else None
        serials.append((raw or "").strip() or None)
    return serials


def create_equipment_units(
    db: Session,
    fields: dict[str, Any],
    quantity: int = 1,
    serial_number: str | None = None,
    serial_numbers: list[str] | None = None,
) -> list[Equipment]:
    """Insert ``quantity`` identical units, each with its own barcode and QR code.

    Caller commits. Barcodes are reserved per unit before the row is flushed so
    the next unit observes the new maximum.
    """
    if serial_numbers is not None and len(serial_numbers) != quantity:
        raise ValueError(f"Serial numbers count ({len(serial_numbers)}) doesn't match quantity ({quantity})")

    serials = _unit_serials(quantity, serial_number, serial_numbers)
    for serial in serials:
        if serial and serial_exists(db, serial):
            raise DuplicateSerialError(f"Serial number already exists: {serial}")

    category_name = get_category_name(db, fields.get("category_id"))
    preset_barcode = fields.pop("barcode", None)

    created = []
    for count, unit_serial in enumerate(serials, start=1):
        barcode = preset_barcode or generate_barcode(
            db,
            category_name,
            fields.get("purchase_date"),
            count,
            unit_serial,
            quantity,
        )
        equipment = Equipment(**fields)
        equipment.serial_number = unit_serial
        equipment.barcode = barcode
        equipment.condition = equipment.condition or "normal"
        equipment.status = "available"
        equipment.is_active = True
        equipment.created_at = datetime.now()
        equipment.updated_at = datetime.now()
        db.add(equipment)
        db.flush()
        equipment.qr_code = generate_qr_code(equipment.id)
        created.append(equipment)
    return created


def apply_equipment_update(db: Session, equipment: Equipment, changes: dict[str, Any]) -> dict[str, dict]:
    """Apply ``changes`` and return a ``{field: {from, to}}`` diff for the activity log.

    A category or purchase date change regenerates the barcode; if the code
    differs the item is flagged for relabeling.
    """
    diff: dict[str, dict] = {}
    original_category_id = equipment.category_id
    original_purchase_date = equipment.purchase_date

    for field, value in changes.items():
        before = getattr(equipment, field)
        if before != value:
            diff[field] = {"from": before, "to": value}
        setattr(equipment, field, value)

    barcode_inputs_changed = (
        ("category_id" in changes and changes["category_id"] != original_category_id)
        or ("purchase_date" in changes and changes["purchase_date"] != original_purchase_date)
    )
    if barcode_inputs_changed and "needs_relabeling" not in changes and "barcode" not in changes:
        new_barcode = generate_barcode(
            db,
            get_category_name(db, equipment.category_id),
            equipment.purchase_date,
            1,
            equipment.serial_number,
            1,
        )
        if new_barcode != equipment.barcode:
            diff["barcode"] = {"from": equipment.barcode, "to": new_barcode}
            diff["needs_relabeling"] = {"from": bool(equipment.needs_relabeling), "to": True}
            equipment.barcode = new_barcode
            equipment.needs_relabeling = True

    equipment.updated_at = datetime.now()
    return diff


def has_open_transaction(db: Session, equipment_id: int) -> bool:
    return find_open_transaction(db, equipment_id) is not None


def _days_between(start: datetime | date | None, end: datetime) -> float | None:
    if start is None:
        return None
    if not isinstance(start, datetime):
        start = datetime.combine(start, datetime.min.time())
    return round((end - start).total_seconds() / 86400, 2)


def serialize_equipment(equipment: Equipment, resolved: ResolvedStatus | None = None) -> dict:
    transaction = resolved.transaction if resolved else None
    borrower = transaction.User if transaction is not None else None
    category = equipment.Category
    payload = {
        "id": equipment.id,
        "name": equipment.name,
        "serialNumber": equipment.serial_number,
        "barcode": equipment.barcode,
        "qrCode": equipment.qr_code,
        "model": equipment.model,
        "manufacturer": equipment.manufacturer,
        "categoryID": equipment.category_id,
        "categoryName": category.name if category else None,
        "categoryColor": category.color if category else None,
        "purchaseDate": equipment.purchase_date,
        "purchasePrice": equipment.purchase_price,
        "currentValue": equipment.current_value,
        "condition": equipment.condition,
        "equipmentStatus": equipment.status,
        "location": equipment.location,
        "description": equipment.description,
        "notes": equipment.notes,
        "imagePath": equipment.image_path,
        "includedInKit": bool(equipment.included_in_kit),
        "kitContents": equipment.kit_contents,
        "needsRelabeling": bool(equipment.needs_relabeling),
        "createdAt": equipment.created_at,
        "updatedAt": equipment.updated_at,
    }
    if resolved is not None:
        payload.update(
            {
                "status": resolved.status.value,
                "displayStatus": resolved.display_status.value,
                "isOverdue": resolved.is_overdue,
                "checkedOutByID": transaction.user_id if transaction is not None else None,
                "checkedOutByName": borrower.full_name if borrower else None,
                "checkoutDate": transaction.checkout_date if transaction is not None else None,
                "expectedReturnDate": transaction.expected_return_date if transaction is not None else None,
                "transactionPurpose": transaction.purpose if transaction is not None else None,
                "daysOut": _days_between(transaction.checkout_date, datetime.now()) if transaction is not None else None,
            }
        )
    return payload


def map_equipment_field(field: str) -> str:
    mapping = {
        "serialNumber": "serial_number",
        "categoryID": "category_id",
        "purchaseDate": "purchase_date",
        "purchasePrice": "purchase_price",
        "currentValue": "current_value",
        "imagePath": "image_path",
        "includedInKit": "included_in_kit",
        "kitContents": "kit_contents",
        "needsRelabeling": "needs_relabeling",
    }
    return mapping.get(field, field)

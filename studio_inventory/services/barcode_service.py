"""Structured equipment barcodes.

Format: ``TT-CCYY-NNNNN[-SSSS]``

* ``TT``    type code derived from the category name
* ``CC``    position within a multi-unit batch (01-99), ``00`` for single items
* ``YY``    two-digit purchase year, ``00`` when unknown
* ``NNNNN`` sequence number, unique per (type code, year)
* ``SSSS``  last four digits of the serial number, multi-unit batches only
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_inventory.models.inventory_models import BarcodeSequence, Equipment

logger = logging.getLogger("studio_inventory.barcodes")

BARCODE_PATTERN = re.compile(r"^[A-Z]{2}-\d{4}-\d{5}(-\d{4})?$")
SEQUENCE_WIDTH = 5
# "TT-CCYY-" is eight characters; the sequence segment starts at position 9.
SEQUENCE_OFFSET = 9

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%m-%d-%Y", "%d.%m.%Y")

_FALLBACK_LOCK = threading.Lock()
_last_fallback_stamp = -1


class TypeCode(str, Enum):
    CAMERA = "CA"
    LENS = "LN"
    MICROPHONE = "MI"
    LIGHTING = "LG"
    MISC = "MS"
    GRIP = "GR"
    STAND = "SD"
    STROBE = "SB"
    MODIFIER = "MD"
    DRONE = "DN"
    BATTERY = "BY"
    REMOTE = "RT"
    VIDEO_LIGHT = "VL"
    STORAGE = "SR"


DEFAULT_TYPE_CODE = TypeCode.MISC

CATEGORY_TYPE_CODES: dict[str, TypeCode] = {
    "camera": TypeCode.CAMERA,
    "cameras": TypeCode.CAMERA,
    "lens": TypeCode.LENS,
    "lenses": TypeCode.LENS,
    "microphone": TypeCode.MICROPHONE,
    "microphones": TypeCode.MICROPHONE,
    "audio": TypeCode.MICROPHONE,
    "lighting": TypeCode.LIGHTING,
    "light": TypeCode.LIGHTING,
    "lights": TypeCode.LIGHTING,
    "misc": TypeCode.MISC,
    "miscellaneous": TypeCode.MISC,
    "grip": TypeCode.GRIP,
    "stand": TypeCode.STAND,
    "stands": TypeCode.STAND,
    "strobe": TypeCode.STROBE,
    "strobes": TypeCode.STROBE,
    "modifier": TypeCode.MODIFIER,
    "modifiers": TypeCode.MODIFIER,
    "drone": TypeCode.DRONE,
    "drones": TypeCode.DRONE,
    "battery": TypeCode.BATTERY,
    "batteries": TypeCode.BATTERY,
    "remote": TypeCode.REMOTE,
    "remotes": TypeCode.REMOTE,
    "video light": TypeCode.VIDEO_LIGHT,
    "video lights": TypeCode.VIDEO_LIGHT,
    "storage": TypeCode.STORAGE,
    "accessories": TypeCode.MISC,
    "computing": TypeCode.MISC,
    "cables": TypeCode.MISC,
    "furniture": TypeCode.MISC,
}


@dataclass(frozen=True)
class ParsedBarcode:
    type_code: str
    count: int
    year: str
    sequential_number: int
    serial_suffix: Optional[str] = None


def get_type_code(category_name: str | None) -> str:
    if not category_name:
        return DEFAULT_TYPE_CODE.value
    normalized = category_name.strip().lower()
    return CATEGORY_TYPE_CODES.get(normalized, DEFAULT_TYPE_CODE).value


def _parse_year(text: str) -> int | None:
    if re.fullmatch(r"\d{4}", text):
        return int(text)
    try:
        return datetime.fromisoformat(text).year
    except ValueError:
        pass
    head = text.split(" ", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).year
        except ValueError:
            continue
    return None


def _purchase_year(purchase_date: date | datetime | str | None) -> str:
    if not purchase_date:
        return "00"
    if isinstance(purchase_date, (date, datetime)):
        year = purchase_date.year
    else:
        year = _parse_year(str(purchase_date).strip())
        if year is None:
            logger.warning("Unrecognized purchase date %r; using year 00", purchase_date)
            return "00"
    return f"{year % 100:02d}"


def _count_segment(count: int, total_quantity: int) -> str:
    if total_quantity == 1:
        return "00"
    return f"{max(1, min(99, int(count))):02d}"


def _serial_suffix(serial_number: str | None, total_quantity: int) -> str | None:
    if not serial_number or total_quantity <= 1:
        return None
    digits = re.sub(r"[^0-9]", "", serial_number)
    return digits[-4:].rjust(4, "0")


def _max_existing_sequence(db: Session, type_code: str, year: str) -> int:
    sequence_segment = func.substr(Equipment.barcode, SEQUENCE_OFFSET, SEQUENCE_WIDTH)
    latest = db.execute(
        select(Equipment.barcode)
        .where(Equipment.barcode.like(f"{type_code}-__{year}-%"))
        .order_by(sequence_segment.desc(), Equipment.barcode.desc())
        .limit(1)
    ).scalars().first()
    if not latest:
        return 0
    parts = latest.split("-")
    if len(parts) < 3:
        return 0
    try:
        return int(parts[2])
    except ValueError:
        return 0


def _counter_filter(type_code: str, year: str):
    return (BarcodeSequence.type_code == type_code, BarcodeSequence.year == year)


def _counter_value(db: Session, type_code: str, year: str) -> int | None:
    return db.execute(
        select(BarcodeSequence.last_value).where(*_counter_filter(type_code, year))
    ).scalar()


def _set_counter(db: Session, type_code: str, year: str, value) -> int:
    result = db.execute(
        update(BarcodeSequence)
        .where(*_counter_filter(type_code, year))
        .values(last_value=value, updated_at=datetime.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def get_next_sequential_number(db: Session, type_code: str, year: str) -> int:
    """Return the next free sequence number for (type_code, year) without consuming it."""
    highest = _max_existing_sequence(db, type_code, year)
    counter = _counter_value(db, type_code, year)
    if counter and counter > highest:
        highest = counter
    return highest + 1


def _allocate_sequential_number(db: Session, type_code: str, year: str) -> int:
    """Advance the (type_code, year) counter and return the reserved number.

    The counter is written before existing barcodes are read, so this
    transaction holds the row lock (the database lock on SQLite) for the rest
    of the allocation and concurrent writers queue behind it.
    """
    if not _set_counter(db, type_code, year, BarcodeSequence.last_value + 1):
        try:
            with db.begin_nested():
                db.add(BarcodeSequence(type_code=type_code, year=year, last_value=1, updated_at=datetime.now()))
        except IntegrityError:
            # Lost the race to create the row; it exists now.
            if not _set_counter(db, type_code, year, BarcodeSequence.last_value + 1):
                raise

    next_number = _counter_value(db, type_code, year)
    highest = _max_existing_sequence(db, type_code, year)
    if highest >= next_number:
        next_number = highest + 1
        _set_counter(db, type_code, year, next_number)
    return next_number


def _fallback_barcode() -> str:
    global _last_fallback_stamp
    year = f"{date.today().year % 100:02d}"
    with _FALLBACK_LOCK:
        stamp = int(time.time() * 1000) % 100000
        if 0 <= _last_fallback_stamp - stamp < 1000:
            stamp = (_last_fallback_stamp + 1) % 100000
        _last_fallback_stamp = stamp
    return f"{DEFAULT_TYPE_CODE.value}-00{year}-{stamp:05d}"


def generate_barcode(
    db: Session,
    category_name: str | None = None,
    purchase_date: date | datetime | str | None = None,
    count: int = 1,
    serial_number: str | None = None,
    total_quantity: int = 1,
) -> str:
    """Build the next barcode for an item and reserve its sequence number.

    The reservation runs in a savepoint of the caller's transaction; commit it
    together with the equipment row. Never raises: any failure rolls back the
    savepoint only and yields a timestamp-based ``MS-00YY-NNNNN`` code, so the
    session stays usable and an item always gets a printable label.
    """
    try:
        type_code = get_type_code(category_name)
        year = _purchase_year(purchase_date)
        count_str = _count_segment(count, total_quantity)

        with db.begin_nested():
            sequential_number = _allocate_sequential_number(db, type_code, year)

        barcode = f"{type_code}-{count_str}{year}-{sequential_number:0{SEQUENCE_WIDTH}d}"
        suffix = _serial_suffix(serial_number, total_quantity)
        if suffix:
            barcode += f"-{suffix}"

        logger.info(
            "Generated barcode %s (category=%s, count=%s)",
            barcode,
            category_name or "N/A",
            count_str,
        )
        return barcode
    except Exception:
        logger.exception("Barcode generation failed; using fallback (category=%s)", category_name)
        return _fallback_barcode()


def validate_barcode(code: object) -> bool:
    if not code or not isinstance(code, str):
        return False
    return BARCODE_PATTERN.match(code) is not None


def parse_barcode(code: object) -> Optional[ParsedBarcode]:
    if not validate_barcode(code):
        return None
    parts = code.split("-")
    count_year = parts[1]
    return ParsedBarcode(
        type_code=parts[0],
        count=int(count_year[:2]),
        year=count_year[2:4],
        sequential_number=int(parts[2]),
        serial_suffix=parts[3] if len(parts) == 4 else None,
    )

"""QR identifiers for equipment.

The QR string is a pure function of the equipment id (``EQ-`` + the id
zero-padded to five digits), so it can be recomputed at any time and never
needs a stored mapping.
"""

from __future__ import annotations

import base64
import io
import os
import re
from dataclasses import dataclass
from typing import Optional

import qrcode

QR_PREFIX = "EQ"
QR_PATTERN = re.compile(r"^EQ-\d{5}$")


class InvalidArgumentError(ValueError):
    pass


@dataclass(frozen=True)
class ParsedQRCode:
    prefix: str
    equipment_id: int


def generate_qr_code(equipment_id: int | None) -> str:
    # bool is an int subclass; True must not become EQ-00001.
    if equipment_id is None or isinstance(equipment_id, bool) or not isinstance(equipment_id, int):
        raise InvalidArgumentError("Invalid equipment ID for QR code generation")
    if equipment_id <= 0:
        raise InvalidArgumentError("Invalid equipment ID for QR code generation")
    return f"{QR_PREFIX}-{equipment_id:05d}"


def validate_qr_code(code: object) -> bool:
    if not code or not isinstance(code, str):
        return False
    return QR_PATTERN.match(code) is not None


def parse_qr_code(code: object) -> Optional[ParsedQRCode]:
    if not validate_qr_code(code):
        return None
    prefix, raw_id = code.split("-")
    return ParsedQRCode(prefix=prefix, equipment_id=int(raw_id))


def generate_qr_image(code: str, box_size: int | None = None, border: int | None = None) -> str:
    """Render ``code`` as a PNG and return it as a ``data:`` URL."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=box_size or int(os.environ.get("QR_CODE_BOX_SIZE") or "8"),
        border=border if border is not None else int(os.environ.get("QR_CODE_BORDER") or "2"),
    )
    qr.add_data(code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"

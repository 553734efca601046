from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Condition = Literal["brand_new", "functional", "normal", "worn", "out_of_commission", "broken"]


class EquipmentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    serialNumber: Optional[str] = None
    serialNumbers: Optional[List[str]] = None
    barcode: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    categoryID: Optional[int] = None
    purchaseDate: Optional[date] = None
    purchasePrice: Optional[float] = Field(default=None, ge=0)
    currentValue: Optional[float] = Field(default=None, ge=0)
    condition: Optional[Condition] = None
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    imagePath: Optional[str] = None
    includedInKit: Optional[bool] = None
    kitContents: Optional[str] = None
    quantity: int = Field(default=1, ge=1, le=99)
    createdBy: Optional[int] = None


class EquipmentUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1)
    serialNumber: Optional[str] = None
    barcode: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    categoryID: Optional[int] = None
    purchaseDate: Optional[date] = None
    purchasePrice: Optional[float] = Field(default=None, ge=0)
    currentValue: Optional[float] = Field(default=None, ge=0)
    condition: Optional[Condition] = None
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    imagePath: Optional[str] = None
    includedInKit: Optional[bool] = None
    kitContents: Optional[str] = None
    needsRelabeling: Optional[bool] = None
    updatedBy: Optional[int] = None

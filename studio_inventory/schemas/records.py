from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class MaintenanceRecordCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    maintenanceType: Literal["routine", "repair", "calibration", "upgrade"]
    description: str = Field(min_length=1)
    performedDate: date
    cost: Optional[float] = None
    performedBy: Optional[str] = None
    nextMaintenanceDate: Optional[date] = None
    notes: Optional[str] = None
    createdBy: Optional[int] = None


class DamageReportCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    reportedBy: int
    damageDescription: str = Field(min_length=1)
    damageSeverity: Literal["minor", "moderate", "severe", "total_loss"] = "minor"
    estimatedRepairCost: Optional[float] = Field(default=None, ge=0)
    imagePaths: List[str] = []
    notes: Optional[str] = None

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from .equipment import Condition


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: Union[int, List[int]]
    userID: int
    expectedReturnDate: datetime
    purpose: Literal["events", "marketing", "personal"]
    notes: Optional[str] = None
    createdBy: Optional[int] = None


class CheckinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: Union[int, List[int]]
    checkedInBy: int
    returnLocation: Literal["studio", "vault"] = "studio"
    conditionOnReturn: Optional[Condition] = None
    notes: Optional[str] = None


class MaintenanceStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    userID: int
    expectedReturnDate: Optional[datetime] = None
    notes: Optional[str] = None


class MaintenanceEndRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    userID: int
    conditionOnReturn: Optional[Condition] = None
    notes: Optional[str] = None

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["admin", "user", "manager"]


class UserCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    fullName: str = Field(min_length=1, max_length=100)
    role: Role = "user"
    phone: Optional[str] = None
    department: Optional[str] = None


class UserUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    fullName: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[Role] = None
    phone: Optional[str] = None
    department: Optional[str] = None

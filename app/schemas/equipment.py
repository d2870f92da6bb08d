from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime


class EquipmentCreateRequest(BaseModel):
    name:              str
    serialNumber:      str
    description:       Optional[str]      = None
    location:          Optional[str]      = None
    healthPercentage:  int                = Field(100, ge=0, le=100)
    purchaseDate:      Optional[datetime] = None
    warrantyExpiry:    Optional[datetime] = None
    ownerId:           Optional[int]      = None
    technicianId:      Optional[int]      = None
    maintenanceTeamId: Optional[int]      = None
    categoryId:        Optional[int]      = None
    departmentId:      Optional[int]      = None
    workCenterId:      Optional[int]      = None

    @field_validator("name", "serialNumber")
    @classmethod
    def not_blank(cls, v):
        if not v.strip(): raise ValueError("Cannot be empty")
        return v.strip()


class EquipmentUpdateRequest(BaseModel):
    name:              Optional[str] = None
    description:       Optional[str] = None
    location:          Optional[str] = None
    healthPercentage:  Optional[int] = Field(None, ge=0, le=100)
    ownerId:           Optional[int] = None
    technicianId:      Optional[int] = None
    maintenanceTeamId: Optional[int] = None
    categoryId:        Optional[int] = None
    departmentId:      Optional[int] = None
    workCenterId:      Optional[int] = None

    @field_validator("name")
    @classmethod
    def not_blank(cls, v):
        if v is not None and not v.strip(): raise ValueError("Name cannot be empty")
        return v.strip() if v else v


class EquipmentScrapRequest(BaseModel):
    reason: Optional[str] = None

"""
Import all models here so that:
1. Base.metadata knows every table (create_all, schema tooling)
2. Relationships between models resolve correctly

Order matters: import parent tables before child tables.
"""

from app.models.role import RoleName
from app.models.company import Company
from app.models.department import Department
from app.models.user import User
from app.models.team import MaintenanceTeam, TeamMember
from app.models.equipment_category import EquipmentCategory
from app.models.work_center import WorkCenter
from app.models.equipment import Equipment, EquipmentStatus
from app.models.maintenance_request import (
    MaintenanceRequest, RequestType, RequestStage, RequestPriority,
)
from app.models.audit_log import AuditLog

__all__ = [
    "RoleName",
    "Company",
    "Department",
    "User",
    "MaintenanceTeam",
    "TeamMember",
    "EquipmentCategory",
    "WorkCenter",
    "Equipment",
    "EquipmentStatus",
    "MaintenanceRequest",
    "RequestType",
    "RequestStage",
    "RequestPriority",
    "AuditLog",
]

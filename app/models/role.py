import enum


class RoleName(str, enum.Enum):
    ADMIN               = "ADMIN"
    MAINTENANCE_MANAGER = "MAINTENANCE_MANAGER"
    TECHNICIAN          = "TECHNICIAN"
    EMPLOYEE            = "EMPLOYEE"


# Roles that can be put in charge of a maintenance request
ASSIGNABLE_ROLES = (RoleName.TECHNICIAN, RoleName.MAINTENANCE_MANAGER)

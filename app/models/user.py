from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, TIMESTAMP, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.role import RoleName


class User(Base):
    __tablename__ = "users"

    id           = Column(Integer, primary_key=True, index=True)
    companyId    = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    departmentId = Column(Integer, ForeignKey("departments.id"), nullable=True)
    name         = Column(String(150), nullable=False)
    email        = Column(String(255), unique=True, nullable=False, index=True)
    role         = Column(Enum(RoleName), default=RoleName.EMPLOYEE, nullable=False)
    isActive     = Column(Boolean, default=True, nullable=False)
    createdAt    = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt    = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                          onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company            = relationship("Company", back_populates="users")
    department         = relationship("Department", back_populates="users")
    team_memberships   = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")
    assigned_requests  = relationship("MaintenanceRequest", foreign_keys="MaintenanceRequest.technicianId",
                                      back_populates="technician")
    created_requests   = relationship("MaintenanceRequest", foreign_keys="MaintenanceRequest.createdById",
                                      back_populates="created_by")
    audit_logs         = relationship("AuditLog", back_populates="user")

    @property
    def team_ids(self) -> list[int]:
        return [m.teamId for m in self.team_memberships]

    def __repr__(self):
        return f"<User id={self.id} email={self.email} role={self.role}>"

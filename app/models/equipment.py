import enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, TIMESTAMP, Enum, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class EquipmentStatus(str, enum.Enum):
    ACTIVE            = "ACTIVE"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"
    SCRAPPED          = "SCRAPPED"


class Equipment(Base):
    __tablename__ = "equipment"
    __table_args__ = (
        UniqueConstraint("companyId", "serialNumber", name="uq_equipment_company_serial"),
        CheckConstraint('"healthPercentage" BETWEEN 0 AND 100', name="ck_equipment_health_range"),
    )

    id                = Column(Integer, primary_key=True, index=True)
    companyId         = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name              = Column(String(200), nullable=False)
    serialNumber      = Column(String(100), nullable=False)
    description       = Column(Text, nullable=True)
    location          = Column(String(200), nullable=True)
    healthPercentage  = Column(Integer, default=100, nullable=False)
    status            = Column(Enum(EquipmentStatus), default=EquipmentStatus.ACTIVE, nullable=False, index=True)
    purchaseDate      = Column(TIMESTAMP(timezone=True), nullable=True)
    warrantyExpiry    = Column(TIMESTAMP(timezone=True), nullable=True)
    scrapDate         = Column(TIMESTAMP(timezone=True), nullable=True)
    ownerId           = Column(Integer, ForeignKey("users.id"), nullable=True)
    technicianId      = Column(Integer, ForeignKey("users.id"), nullable=True)   # default technician
    maintenanceTeamId = Column(Integer, ForeignKey("maintenance_teams.id"), nullable=True)
    categoryId        = Column(Integer, ForeignKey("equipment_categories.id"), nullable=True)
    departmentId      = Column(Integer, ForeignKey("departments.id"), nullable=True)
    workCenterId      = Column(Integer, ForeignKey("work_centers.id"), nullable=True)
    createdAt         = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt         = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                               onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company          = relationship("Company", back_populates="equipment")
    owner            = relationship("User", foreign_keys=[ownerId])
    technician       = relationship("User", foreign_keys=[technicianId])
    maintenance_team = relationship("MaintenanceTeam", back_populates="equipment")
    category         = relationship("EquipmentCategory", back_populates="equipment")
    department       = relationship("Department", back_populates="equipment")
    work_center      = relationship("WorkCenter", back_populates="equipment")
    requests         = relationship("MaintenanceRequest", back_populates="equipment")

    def __repr__(self):
        return f"<Equipment id={self.id} name={self.name} status={self.status} health={self.healthPercentage}>"

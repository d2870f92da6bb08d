import enum
from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, TIMESTAMP, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class RequestType(str, enum.Enum):
    CORRECTIVE = "CORRECTIVE"   # breakdown
    PREVENTIVE = "PREVENTIVE"   # scheduled routine work


class RequestStage(str, enum.Enum):
    NEW         = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    REPAIRED    = "REPAIRED"
    SCRAP       = "SCRAP"


class RequestPriority(str, enum.Enum):
    LOW    = "LOW"
    MEDIUM = "MEDIUM"
    HIGH   = "HIGH"


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"

    id             = Column(Integer, primary_key=True, index=True)
    companyId      = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    subject        = Column(String(200), nullable=False)
    description    = Column(Text, nullable=True)
    requestType    = Column(Enum(RequestType), default=RequestType.CORRECTIVE, nullable=False)
    stage          = Column(Enum(RequestStage), default=RequestStage.NEW, nullable=False, index=True)
    priority       = Column(Enum(RequestPriority), default=RequestPriority.MEDIUM, nullable=False)
    requestDate    = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    scheduledDate  = Column(TIMESTAMP(timezone=True), nullable=True)
    startDate      = Column(TIMESTAMP(timezone=True), nullable=True)
    completionDate = Column(TIMESTAMP(timezone=True), nullable=True)
    duration       = Column(Float, nullable=True)    # hours spent, recorded on completion
    notes          = Column(Text, nullable=True)
    equipmentId    = Column(Integer, ForeignKey("equipment.id"), nullable=False)
    categoryId     = Column(Integer, ForeignKey("equipment_categories.id"), nullable=True)
    teamId         = Column(Integer, ForeignKey("maintenance_teams.id"), nullable=True)
    technicianId   = Column(Integer, ForeignKey("users.id"), nullable=True)
    createdById    = Column(Integer, ForeignKey("users.id"), nullable=False)
    createdAt      = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt      = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                            onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company    = relationship("Company", back_populates="requests")
    equipment  = relationship("Equipment", back_populates="requests")
    category   = relationship("EquipmentCategory", back_populates="requests")
    team       = relationship("MaintenanceTeam", back_populates="requests")
    technician = relationship("User", foreign_keys=[technicianId], back_populates="assigned_requests")
    created_by = relationship("User", foreign_keys=[createdById], back_populates="created_requests")

    def __repr__(self):
        return f"<MaintenanceRequest id={self.id} stage={self.stage} equipmentId={self.equipmentId}>"

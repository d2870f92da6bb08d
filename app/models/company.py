from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Company(Base):
    __tablename__ = "companies"

    id         = Column(Integer, primary_key=True, index=True)
    name       = Column(String(150), nullable=False)
    inviteCode = Column(String(30), unique=True, nullable=False, index=True)
    createdAt  = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    # Company is the tenant root: removing it removes everything it owns
    departments  = relationship("Department", back_populates="company", cascade="all, delete-orphan")
    users        = relationship("User", back_populates="company", cascade="all, delete-orphan")
    teams        = relationship("MaintenanceTeam", back_populates="company", cascade="all, delete-orphan")
    categories   = relationship("EquipmentCategory", back_populates="company", cascade="all, delete-orphan")
    work_centers = relationship("WorkCenter", back_populates="company", cascade="all, delete-orphan")
    equipment    = relationship("Equipment", back_populates="company", cascade="all, delete-orphan")
    requests     = relationship("MaintenanceRequest", back_populates="company", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Company id={self.id} name={self.name}>"

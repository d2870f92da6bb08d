from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base


class EquipmentCategory(Base):
    __tablename__ = "equipment_categories"
    __table_args__ = (UniqueConstraint("companyId", "name", name="uq_category_company_name"),)

    id        = Column(Integer, primary_key=True, index=True)
    companyId = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name      = Column(String(100), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company   = relationship("Company", back_populates="categories")
    equipment = relationship("Equipment", back_populates="category")
    requests  = relationship("MaintenanceRequest", back_populates="category")

    def __repr__(self):
        return f"<EquipmentCategory id={self.id} name={self.name}>"

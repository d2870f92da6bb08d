from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class WorkCenter(Base):
    __tablename__ = "work_centers"

    id        = Column(Integer, primary_key=True, index=True)
    companyId = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name      = Column(String(100), nullable=False)
    location  = Column(String(200), nullable=True)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company   = relationship("Company", back_populates="work_centers")
    equipment = relationship("Equipment", back_populates="work_center")

    def __repr__(self):
        return f"<WorkCenter id={self.id} name={self.name}>"

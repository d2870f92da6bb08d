from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (UniqueConstraint("companyId", "name", name="uq_department_company_name"),)

    id        = Column(Integer, primary_key=True, index=True)
    companyId = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name      = Column(String(100), nullable=False)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company   = relationship("Company", back_populates="departments")
    users     = relationship("User", back_populates="department")
    equipment = relationship("Equipment", back_populates="department")

    def __repr__(self):
        return f"<Department id={self.id} name={self.name}>"

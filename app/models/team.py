from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class MaintenanceTeam(Base):
    __tablename__ = "maintenance_teams"
    __table_args__ = (UniqueConstraint("companyId", "name", name="uq_team_company_name"),)

    id          = Column(Integer, primary_key=True, index=True)
    companyId   = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name        = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    createdAt   = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    company   = relationship("Company", back_populates="teams")
    members   = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    equipment = relationship("Equipment", back_populates="maintenance_team")
    requests  = relationship("MaintenanceRequest", back_populates="team")

    def __repr__(self):
        return f"<MaintenanceTeam id={self.id} name={self.name}>"


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("teamId", "userId", name="uq_team_member"),)

    id       = Column(Integer, primary_key=True, index=True)
    teamId   = Column(Integer, ForeignKey("maintenance_teams.id", ondelete="CASCADE"), nullable=False)
    userId   = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    isLead   = Column(Boolean, default=False, nullable=False)
    joinedAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    team = relationship("MaintenanceTeam", back_populates="members")
    user = relationship("User", back_populates="team_memberships")

    def __repr__(self):
        return f"<TeamMember teamId={self.teamId} userId={self.userId} lead={self.isLead}>"

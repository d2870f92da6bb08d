from sqlalchemy.orm import Session

from app.models.team import MaintenanceTeam, TeamMember
from app.models.user import User
from app.schemas.team import TeamCreateRequest
from app.services.lifecycle import OPEN_STAGES
from app.utils.audit import log_action
from app.utils.exceptions import NotFoundException, DuplicateEntryException, ConflictException


def _serialize_member(m: TeamMember) -> dict:
    return {
        "userId": m.user.id,
        "name":   m.user.name,
        "email":  m.user.email,
        "role":   m.user.role.value,
        "isLead": m.isLead,
    }


def _serialize(t: MaintenanceTeam, with_members: bool = False) -> dict:
    data = {
        "id":           t.id,
        "name":         t.name,
        "description":  t.description,
        "memberCount":  len(t.members),
        "openRequests": sum(1 for r in t.requests if r.stage in OPEN_STAGES),
    }
    if with_members:
        data["members"] = [_serialize_member(m) for m in t.members]
    return data


class TeamService:

    def _get_scoped(self, db: Session, team_id: int, company_id: int) -> MaintenanceTeam:
        t = db.query(MaintenanceTeam).filter(
            MaintenanceTeam.id == team_id,
            MaintenanceTeam.companyId == company_id,
        ).first()
        if not t:
            raise NotFoundException("Maintenance team")
        return t

    def _get_company_user(self, db: Session, user_id: int, company_id: int) -> User:
        u = db.query(User).filter(User.id == user_id, User.companyId == company_id).first()
        if not u:
            raise NotFoundException("User")
        return u

    def _get_member(self, db: Session, team_id: int, user_id: int) -> TeamMember:
        m = db.query(TeamMember).filter(TeamMember.teamId == team_id, TeamMember.userId == user_id).first()
        if not m:
            raise NotFoundException("Team member")
        return m

    def list_teams(self, db: Session, actor: User) -> list[dict]:
        teams = db.query(MaintenanceTeam).filter(
            MaintenanceTeam.companyId == actor.companyId
        ).order_by(MaintenanceTeam.name).all()
        return [_serialize(t) for t in teams]

    def get_team(self, db: Session, team_id: int, actor: User) -> dict:
        return _serialize(self._get_scoped(db, team_id, actor.companyId), with_members=True)

    def create_team(self, db: Session, data: TeamCreateRequest, actor: User) -> dict:
        if db.query(MaintenanceTeam).filter(
            MaintenanceTeam.companyId == actor.companyId,
            MaintenanceTeam.name == data.name,
        ).first():
            raise DuplicateEntryException("A team with this name already exists", field="name")

        team = MaintenanceTeam(companyId=actor.companyId, name=data.name, description=data.description)
        db.add(team)
        db.flush()
        # The lead is always a member, even when missing from memberIds
        member_ids = list(dict.fromkeys(data.memberIds))
        if data.leadId is not None and data.leadId not in member_ids:
            member_ids.append(data.leadId)
        for user_id in member_ids:
            self._get_company_user(db, user_id, actor.companyId)
            db.add(TeamMember(teamId=team.id, userId=user_id, isLead=(user_id == data.leadId)))

        log_action(db, actor.companyId, actor.id, "CREATE", "MaintenanceTeam", team.id,
                   f"Created team '{team.name}' with {len(member_ids)} member(s)")
        db.commit()
        db.refresh(team)
        return _serialize(team, with_members=True)

    def delete_team(self, db: Session, team_id: int, actor: User) -> None:
        team = self._get_scoped(db, team_id, actor.companyId)
        if any(r.stage in OPEN_STAGES for r in team.requests):
            raise ConflictException("Team still has open maintenance requests")
        for r in team.requests:
            r.teamId = None
        for e in team.equipment:
            e.maintenanceTeamId = None

        log_action(db, actor.companyId, actor.id, "DELETE", "MaintenanceTeam", team.id,
                   f"Deleted team '{team.name}'")
        db.delete(team)
        db.commit()

    def add_member(self, db: Session, team_id: int, user_id: int, is_lead: bool, actor: User) -> dict:
        team = self._get_scoped(db, team_id, actor.companyId)
        user = self._get_company_user(db, user_id, actor.companyId)
        if db.query(TeamMember).filter(TeamMember.teamId == team.id, TeamMember.userId == user.id).first():
            raise ConflictException(f"{user.name} is already a member of {team.name}")

        db.add(TeamMember(teamId=team.id, userId=user.id, isLead=is_lead))
        log_action(db, actor.companyId, actor.id, "ADD_MEMBER", "MaintenanceTeam", team.id,
                   f"Added {user.name} to '{team.name}'")
        db.commit()
        db.refresh(team)
        return _serialize(team, with_members=True)

    def remove_member(self, db: Session, team_id: int, user_id: int, actor: User) -> dict:
        team = self._get_scoped(db, team_id, actor.companyId)
        member = self._get_member(db, team.id, user_id)

        log_action(db, actor.companyId, actor.id, "REMOVE_MEMBER", "MaintenanceTeam", team.id,
                   f"Removed {member.user.name} from '{team.name}'")
        db.delete(member)
        db.commit()
        db.refresh(team)
        return _serialize(team, with_members=True)

    def set_lead(self, db: Session, team_id: int, user_id: int, is_lead: bool, actor: User) -> dict:
        team = self._get_scoped(db, team_id, actor.companyId)
        member = self._get_member(db, team.id, user_id)
        member.isLead = is_lead

        log_action(db, actor.companyId, actor.id, "UPDATE_MEMBER", "MaintenanceTeam", team.id,
                   f"{member.user.name} lead={is_lead} in '{team.name}'")
        db.commit()
        db.refresh(team)
        return _serialize(team, with_members=True)


team_service = TeamService()

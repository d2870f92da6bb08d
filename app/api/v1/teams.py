from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_permission
from app.models.user import User
from app.schemas.team import TeamCreateRequest, TeamMemberAddRequest, TeamMemberUpdateRequest
from app.schemas.common import success_response
from app.services.team_service import team_service
from app.utils.permissions import Action

router = APIRouter(prefix="/teams")


@router.get("", summary="List maintenance teams")
def list_teams(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_VIEW)),
):
    return success_response("Teams retrieved", team_service.list_teams(db, current_user))


@router.get("/{team_id}", summary="Get team with members")
def get_team(
    team_id:      int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_VIEW)),
):
    return success_response("Team retrieved", team_service.get_team(db, team_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create team (Admin/Manager)")
def create_team(
    body:         TeamCreateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_MANAGE)),
):
    return success_response("Team created successfully", team_service.create_team(db, body, current_user))


@router.delete("/{team_id}", summary="Delete team (Admin/Manager)")
def delete_team(
    team_id:      int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_MANAGE)),
):
    team_service.delete_team(db, team_id, current_user)
    return success_response("Team deleted successfully", None)


@router.post("/{team_id}/members", status_code=status.HTTP_201_CREATED, summary="Add team member")
def add_member(
    team_id:      int,
    body:         TeamMemberAddRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_MANAGE)),
):
    return success_response("Member added",
                            team_service.add_member(db, team_id, body.userId, body.isLead, current_user))


@router.delete("/{team_id}/members/{user_id}", summary="Remove team member")
def remove_member(
    team_id:      int,
    user_id:      int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_MANAGE)),
):
    return success_response("Member removed", team_service.remove_member(db, team_id, user_id, current_user))


@router.patch("/{team_id}/members/{user_id}", summary="Set or clear team lead")
def update_member(
    team_id:      int,
    user_id:      int,
    body:         TeamMemberUpdateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.TEAM_MANAGE)),
):
    return success_response("Member updated",
                            team_service.set_lead(db, team_id, user_id, body.isLead, current_user))

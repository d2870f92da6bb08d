from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_permission, get_any_authenticated
from app.models.user import User
from app.schemas.common import success_response
from app.services.dashboard_service import dashboard_service
from app.utils.permissions import Action, allowed_actions

router = APIRouter(prefix="/dashboard")


@router.get("", summary="Dashboard aggregates for the current company")
def get_dashboard(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.DASHBOARD_VIEW)),
):
    data = dashboard_service.get_dashboard_aggregates(db, current_user.companyId)
    return success_response("Dashboard summary retrieved", data)


@router.get("/permissions", summary="Actions the current user may perform")
def get_permissions(current_user: User = Depends(get_any_authenticated)):
    return success_response("Permissions retrieved", {
        "role":    current_user.role.value,
        "actions": allowed_actions(current_user.role),
    })


@router.get("/reports/requests-by-team", summary="Request counts per team and stage")
def requests_by_team(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.DASHBOARD_VIEW)),
):
    return success_response("Requests by team retrieved",
                            {"teams": dashboard_service.requests_by_team(db, current_user.companyId)})


@router.get("/reports/equipment-health", summary="Equipment health distribution")
def equipment_health(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.DASHBOARD_VIEW)),
):
    return success_response("Equipment health distribution retrieved",
                            dashboard_service.equipment_health_distribution(db, current_user.companyId))

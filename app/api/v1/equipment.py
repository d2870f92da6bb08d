from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.config import settings
from app.database import get_db
from app.dependencies import require_permission
from app.models.equipment import EquipmentStatus
from app.models.maintenance_request import RequestStage
from app.models.user import User
from app.schemas.equipment import EquipmentCreateRequest, EquipmentUpdateRequest, EquipmentScrapRequest
from app.schemas.common import success_response, paginated_response
from app.services.equipment_service import equipment_service
from app.utils.permissions import Action

router = APIRouter(prefix="/equipment")


@router.get("", summary="List equipment")
def list_equipment(
    page:         int                       = Query(1, ge=1),
    limit:        int                       = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    status:       Optional[EquipmentStatus] = Query(None),
    categoryId:   Optional[int]             = Query(None),
    departmentId: Optional[int]             = Query(None),
    teamId:       Optional[int]             = Query(None),
    search:       Optional[str]             = Query(None, max_length=100),
    critical:     Optional[bool]            = Query(None),
    db:           Session                   = Depends(get_db),
    current_user: User                      = Depends(require_permission(Action.EQUIPMENT_VIEW)),
):
    data, total = equipment_service.list_equipment(
        db, current_user, page, limit, status, categoryId, departmentId, teamId, search, critical,
    )
    return paginated_response("Equipment retrieved successfully", data, total, page, limit)


@router.get("/critical", summary="Critical equipment (lowest health first)")
def list_critical(
    limit:        int     = Query(5, ge=1, le=50),
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.EQUIPMENT_VIEW)),
):
    return success_response("Critical equipment retrieved", equipment_service.list_critical(db, current_user, limit))


@router.get("/{equipment_id}", summary="Get equipment")
def get_equipment(
    equipment_id: int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.EQUIPMENT_VIEW)),
):
    return success_response("Equipment retrieved", equipment_service.get_equipment(db, equipment_id, current_user))


@router.get("/{equipment_id}/requests", summary="Maintenance history of a piece of equipment")
def list_equipment_requests(
    equipment_id: int,
    page:         int                    = Query(1, ge=1),
    limit:        int                    = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    stage:        Optional[RequestStage] = Query(None),
    db:           Session                = Depends(get_db),
    current_user: User                   = Depends(require_permission(Action.REQUEST_VIEW)),
):
    data, total = equipment_service.list_equipment_requests(db, equipment_id, current_user, page, limit, stage)
    return paginated_response("Equipment requests retrieved", data, total, page, limit)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Register equipment (Admin/Manager)")
def create_equipment(
    body:         EquipmentCreateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.EQUIPMENT_MANAGE)),
):
    return success_response("Equipment created successfully",
                            equipment_service.create_equipment(db, body, current_user))


@router.put("/{equipment_id}", summary="Update equipment (Admin/Manager)")
def update_equipment(
    equipment_id: int,
    body:         EquipmentUpdateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.EQUIPMENT_MANAGE)),
):
    return success_response("Equipment updated successfully",
                            equipment_service.update_equipment(db, equipment_id, body, current_user))


@router.post("/{equipment_id}/scrap", summary="Scrap equipment (Admin/Manager)")
def scrap_equipment(
    equipment_id: int,
    body:         Optional[EquipmentScrapRequest] = None,
    db:           Session                         = Depends(get_db),
    current_user: User                            = Depends(require_permission(Action.EQUIPMENT_SCRAP)),
):
    reason = body.reason if body else None
    return success_response("Equipment scrapped successfully",
                            equipment_service.scrap_equipment(db, equipment_id, current_user, reason))

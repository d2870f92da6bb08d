from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.config import settings
from app.database import get_db
from app.dependencies import require_permission
from app.models.maintenance_request import RequestStage, RequestType, RequestPriority
from app.models.user import User
from app.schemas.maintenance_request import (
    RequestCreateRequest, RequestUpdateRequest, StageTransitionRequest, AssignTechnicianRequest,
)
from app.schemas.common import success_response, paginated_response
from app.services.maintenance_request_service import maintenance_request_service
from app.utils.permissions import Action

router = APIRouter(prefix="/requests")


# ─── Special views (declared before /{request_id}) ───────────────────────────
@router.get("/kanban", summary="Requests grouped by stage")
def get_kanban(
    teamId:       Optional[int]             = Query(None),
    technicianId: Optional[int]             = Query(None),
    priority:     Optional[RequestPriority] = Query(None),
    db:           Session                   = Depends(get_db),
    current_user: User                      = Depends(require_permission(Action.REQUEST_VIEW)),
):
    data = maintenance_request_service.get_kanban(db, current_user, teamId, technicianId, priority)
    return success_response("Kanban data retrieved", data)


@router.get("/calendar", summary="Scheduled requests in a date range")
def get_calendar(
    startDate:    datetime              = Query(...),
    endDate:      datetime              = Query(...),
    requestType:  Optional[RequestType] = Query(None),
    teamId:       Optional[int]         = Query(None),
    db:           Session               = Depends(get_db),
    current_user: User                  = Depends(require_permission(Action.REQUEST_VIEW)),
):
    data = maintenance_request_service.get_calendar(db, current_user, startDate, endDate, requestType, teamId)
    return success_response("Calendar events retrieved", {"events": data})


@router.get("/stats", summary="Request counts for the company")
def get_stats(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.DASHBOARD_VIEW)),
):
    return success_response("Request stats retrieved", maintenance_request_service.get_stats(db, current_user))


# ─── CRUD ─────────────────────────────────────────────────────────────────────
@router.get("", summary="List maintenance requests (role-filtered)")
def list_requests(
    page:         int                       = Query(1, ge=1),
    limit:        int                       = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    stage:        Optional[RequestStage]    = Query(None),
    requestType:  Optional[RequestType]     = Query(None),
    priority:     Optional[RequestPriority] = Query(None),
    equipmentId:  Optional[int]             = Query(None),
    teamId:       Optional[int]             = Query(None),
    technicianId: Optional[int]             = Query(None),
    createdById:  Optional[int]             = Query(None),
    isOverdue:    Optional[bool]            = Query(None),
    search:       Optional[str]             = Query(None, max_length=100),
    fromDate:     Optional[datetime]        = Query(None),
    toDate:       Optional[datetime]        = Query(None),
    db:           Session                   = Depends(get_db),
    current_user: User                      = Depends(require_permission(Action.REQUEST_VIEW)),
):
    data, total = maintenance_request_service.list_requests(
        db, current_user, page, limit,
        stage, requestType, priority, equipmentId, teamId, technicianId, createdById,
        isOverdue, search, fromDate, toDate,
    )
    return paginated_response("Requests retrieved successfully", data, total, page, limit)


@router.get("/{request_id}", summary="Get maintenance request")
def get_request(
    request_id:   int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.REQUEST_VIEW)),
):
    return success_response("Request retrieved", maintenance_request_service.get_request(db, request_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create maintenance request")
def create_request(
    body:         RequestCreateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.REQUEST_CREATE)),
):
    data = maintenance_request_service.create_request(db, body, current_user)
    return success_response("Maintenance request created successfully", data)


@router.put("/{request_id}", summary="Edit maintenance request (not its stage)")
def update_request(
    request_id:   int,
    body:         RequestUpdateRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.REQUEST_UPDATE)),
):
    data = maintenance_request_service.update_request(db, request_id, body, current_user)
    return success_response("Request updated successfully", data)


@router.delete("/{request_id}", summary="Delete maintenance request (NEW only unless Admin)")
def delete_request(
    request_id:   int,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.REQUEST_DELETE)),
):
    maintenance_request_service.delete_request(db, request_id, current_user)
    return success_response("Request deleted successfully", None)


# ─── Lifecycle ────────────────────────────────────────────────────────────────
@router.patch("/{request_id}/stage", summary="Move request to another stage (Kanban drop)")
def transition_stage(
    request_id:   int,
    body:         StageTransitionRequest,
    db:           Session = Depends(get_db),
    current_user: User    = Depends(require_permission(Action.REQUEST_TRANSITION)),
):
    data = maintenance_request_service.transition_stage(db, request_id, body, current_user)
    return success_response("Request stage updated successfully", data)


@router.patch("/{request_id}/assign", summary="Assign technician (omit technicianId to self-assign)")
def assign_technician(
    request_id:   int,
    body:         Optional[AssignTechnicianRequest] = None,
    db:           Session                           = Depends(get_db),
    current_user: User                              = Depends(require_permission(Action.REQUEST_VIEW)),
):
    # Role rules (manager vs. technician vs. employee) live in the assignment policy
    technician_id = body.technicianId if body else None
    data = maintenance_request_service.assign_technician(db, request_id, current_user, technician_id)
    return success_response("Technician assigned successfully", data)

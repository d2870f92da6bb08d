import logging
from datetime import datetime

from sqlalchemy import and_, case, not_, or_
from sqlalchemy.orm import Session

from app.models.equipment import Equipment, EquipmentStatus
from app.models.maintenance_request import (
    MaintenanceRequest, RequestStage, RequestType, RequestPriority,
)
from app.models.role import RoleName, ASSIGNABLE_ROLES
from app.models.team import MaintenanceTeam
from app.models.user import User
from app.schemas.maintenance_request import (
    RequestCreateRequest, RequestUpdateRequest, StageTransitionRequest,
)
from app.services.lifecycle import (
    OPEN_STAGES, PRIORITY_RANK,
    utcnow, as_utc, is_terminal, check_transition, transition_values,
    validate_schedule, resolve_assignee, compute_overdue, board_sort_key,
)
from app.services.dashboard_service import summarize_requests
from app.utils.audit import log_action
from app.utils.notifications import (
    notify_request_assigned, notify_request_created,
    notify_stage_changed, notify_equipment_review,
)
from app.utils.permissions import Action, is_allowed
from app.utils.exceptions import (
    NotFoundException, ForbiddenException, ValidationException,
    InvalidTransitionException, ConflictException,
)

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def _serialize(r: MaintenanceRequest, now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "id":          r.id,
        "subject":     r.subject,
        "description": r.description,
        "requestType": r.requestType.value,
        "stage":       r.stage.value,
        "priority":    r.priority.value,
        "isOverdue":   compute_overdue(r, now),
        "equipment": {
            "id":           r.equipment.id,
            "name":         r.equipment.name,
            "serialNumber": r.equipment.serialNumber,
            "status":       r.equipment.status.value,
        },
        "category":   {"id": r.category.id, "name": r.category.name} if r.category else None,
        "team":       {"id": r.team.id, "name": r.team.name} if r.team else None,
        "technician": {
            "id":    r.technician.id,
            "name":  r.technician.name,
            "email": r.technician.email,
        } if r.technician else None,
        "createdBy": {
            "id":   r.created_by.id,
            "name": r.created_by.name,
        },
        "requestDate":    _iso(r.requestDate),
        "scheduledDate":  _iso(r.scheduledDate),
        "startDate":      _iso(r.startDate),
        "completionDate": _iso(r.completionDate),
        "duration":       r.duration,
        "notes":          r.notes,
        "createdAt":      _iso(r.createdAt),
        "updatedAt":      _iso(r.updatedAt),
    }


def overdue_clause(now: datetime):
    """SQL twin of lifecycle.compute_overdue, for filtering and ordering."""
    return and_(
        MaintenanceRequest.scheduledDate.isnot(None),
        MaintenanceRequest.scheduledDate < now,
        MaintenanceRequest.stage.in_(OPEN_STAGES),
    )


def _priority_rank():
    return case(
        *[(MaintenanceRequest.priority == p, rank) for p, rank in PRIORITY_RANK.items()],
        else_=0,
    )


def technician_clause(technician_id: int | None):
    if technician_id is None:
        return MaintenanceRequest.technicianId.is_(None)
    return MaintenanceRequest.technicianId == technician_id


def compare_and_set_stage(
    db: Session, request_id: int, expected_stage: RequestStage, values: dict, *criteria,
) -> bool:
    """
    Conditional write: apply ``values`` only if the row is still at ``expected_stage``
    and matches every extra ``criteria`` clause.
    Returns False when another transaction changed the request first.
    """
    updated = db.query(MaintenanceRequest).filter(
        MaintenanceRequest.id == request_id,
        MaintenanceRequest.stage == expected_stage,
        *criteria,
    ).update(values, synchronize_session=False)
    return updated == 1


class MaintenanceRequestService:

    # ─── Lookups ──────────────────────────────────────────────────────────────
    def _get_scoped(self, db: Session, request_id: int, actor: User) -> MaintenanceRequest:
        r = db.query(MaintenanceRequest).filter(
            MaintenanceRequest.id == request_id,
            MaintenanceRequest.companyId == actor.companyId,
        ).first()
        if not r:
            raise NotFoundException("Maintenance request")
        return r

    def _visibility_filter(self, q, actor: User):
        if is_allowed(actor.role, Action.REQUEST_VIEW_ALL):
            return q
        if actor.role == RoleName.TECHNICIAN:
            return q.filter(or_(
                MaintenanceRequest.technicianId == actor.id,
                MaintenanceRequest.teamId.in_(actor.team_ids),
                MaintenanceRequest.createdById == actor.id,
            ))
        return q.filter(MaintenanceRequest.createdById == actor.id)

    def _check_visible(self, r: MaintenanceRequest, actor: User) -> None:
        if is_allowed(actor.role, Action.REQUEST_VIEW_ALL):
            return
        if actor.role == RoleName.TECHNICIAN and (
            r.technicianId == actor.id or r.teamId in actor.team_ids or r.createdById == actor.id
        ):
            return
        if r.createdById == actor.id:
            return
        raise ForbiddenException("You can only view requests you created or work on")

    def _get_team(self, db: Session, team_id: int, company_id: int) -> MaintenanceTeam:
        team = db.query(MaintenanceTeam).filter(
            MaintenanceTeam.id == team_id,
            MaintenanceTeam.companyId == company_id,
        ).first()
        if not team:
            raise NotFoundException("Maintenance team")
        return team

    def _find_assignable_user(self, db: Session, user_id: int, company_id: int) -> User | None:
        return db.query(User).filter(
            User.id == user_id,
            User.companyId == company_id,
            User.role.in_(ASSIGNABLE_ROLES),
            User.isActive == True,
        ).first()

    def _get_assignable_user(self, db: Session, user_id: int, company_id: int) -> User:
        tech = self._find_assignable_user(db, user_id, company_id)
        if not tech:
            raise NotFoundException("Technician")
        return tech

    # ─── List ─────────────────────────────────────────────────────────────────
    def list_requests(
        self, db: Session, actor: User,
        page: int, limit: int,
        stage: RequestStage | None = None,
        request_type: RequestType | None = None,
        priority: RequestPriority | None = None,
        equipment_id: int | None = None,
        team_id: int | None = None,
        technician_id: int | None = None,
        created_by_id: int | None = None,
        is_overdue: bool | None = None,
        search: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> tuple[list[dict], int]:
        now = utcnow()
        q = db.query(MaintenanceRequest).filter(MaintenanceRequest.companyId == actor.companyId)
        q = self._visibility_filter(q, actor)

        if stage:         q = q.filter(MaintenanceRequest.stage == stage)
        if request_type:  q = q.filter(MaintenanceRequest.requestType == request_type)
        if priority:      q = q.filter(MaintenanceRequest.priority == priority)
        if equipment_id:  q = q.filter(MaintenanceRequest.equipmentId == equipment_id)
        if team_id:       q = q.filter(MaintenanceRequest.teamId == team_id)
        if technician_id: q = q.filter(MaintenanceRequest.technicianId == technician_id)
        if created_by_id: q = q.filter(MaintenanceRequest.createdById == created_by_id)
        if is_overdue is True:  q = q.filter(overdue_clause(now))
        if is_overdue is False: q = q.filter(not_(overdue_clause(now)))
        if search:
            kw = f"%{search.strip()}%"
            q = q.filter(or_(
                MaintenanceRequest.subject.ilike(kw),
                MaintenanceRequest.description.ilike(kw),
            ))
        if from_date: q = q.filter(MaintenanceRequest.requestDate >= as_utc(from_date))
        if to_date:   q = q.filter(MaintenanceRequest.requestDate <= as_utc(to_date))

        total = q.count()
        items = q.order_by(
            case((overdue_clause(now), 1), else_=0).desc(),
            _priority_rank().desc(),
            MaintenanceRequest.createdAt.desc(),
            MaintenanceRequest.id.desc(),
        ).offset((page - 1) * limit).limit(limit).all()
        return [_serialize(r, now) for r in items], total

    # ─── Get by ID ────────────────────────────────────────────────────────────
    def get_request(self, db: Session, request_id: int, actor: User) -> dict:
        r = self._get_scoped(db, request_id, actor)
        self._check_visible(r, actor)
        return _serialize(r)

    # ─── Create ───────────────────────────────────────────────────────────────
    def create_request(self, db: Session, data: RequestCreateRequest, actor: User) -> dict:
        validate_schedule(data.requestType, data.scheduledDate)

        equipment = db.query(Equipment).filter(
            Equipment.id == data.equipmentId,
            Equipment.companyId == actor.companyId,
        ).first()
        if not equipment:
            raise NotFoundException("Equipment")
        if equipment.status == EquipmentStatus.SCRAPPED:
            raise ValidationException("Cannot open a request on scrapped equipment", field="equipmentId")

        # Explicit technician at creation is an assignment and follows the same policy
        if data.technicianId is not None and not is_allowed(actor.role, Action.REQUEST_ASSIGN_ANY):
            if data.technicianId != actor.id or not is_allowed(actor.role, Action.REQUEST_SELF_ASSIGN):
                raise ForbiddenException("Your role cannot choose the technician for a request")

        # Auto-fill from the equipment record
        team_id = data.teamId or equipment.maintenanceTeamId
        team = self._get_team(db, team_id, actor.companyId) if team_id else None

        if data.technicianId:
            technician = self._get_assignable_user(db, data.technicianId, actor.companyId)
        elif equipment.technicianId:
            # A deactivated default technician leaves the request unassigned
            technician = self._find_assignable_user(db, equipment.technicianId, actor.companyId)
            if not technician:
                logger.info(f"Equipment #{equipment.id} default technician #{equipment.technicianId} "
                            f"is not assignable; request left unassigned")
        else:
            technician = None

        now = utcnow()
        r = MaintenanceRequest(
            companyId=actor.companyId,
            subject=data.subject,
            description=data.description,
            requestType=data.requestType,
            priority=data.priority,
            stage=RequestStage.NEW,
            requestDate=now,
            scheduledDate=data.scheduledDate,
            equipmentId=equipment.id,
            categoryId=equipment.categoryId,
            teamId=team.id if team else None,
            technicianId=technician.id if technician else None,
            createdById=actor.id,
        )
        db.add(r)
        db.flush()
        log_action(db, actor.companyId, actor.id, "CREATE", "MaintenanceRequest", r.id,
                   f"{actor.name} opened {r.requestType.value} request '{r.subject}' on {equipment.name}")
        db.commit()
        db.refresh(r)
        logger.info(f"Request #{r.id} created by user #{actor.id} (company #{actor.companyId})")

        if technician:
            notify_request_assigned(technician.email, technician.name, r.id, r.subject)
        if team:
            for member in team.members:
                if member.isLead:
                    notify_request_created(member.user.email, r.id, r.subject, team.name)
        return _serialize(r, now)

    # ─── Update ───────────────────────────────────────────────────────────────
    def update_request(self, db: Session, request_id: int, data: RequestUpdateRequest, actor: User) -> dict:
        if not is_allowed(actor.role, Action.REQUEST_UPDATE):
            raise ForbiddenException("Your role cannot edit maintenance requests")
        r = self._get_scoped(db, request_id, actor)
        if is_terminal(r.stage):
            raise InvalidTransitionException(f"Request is {r.stage.value}; closed requests cannot be edited")

        fields = data.model_fields_set
        request_type   = data.requestType if data.requestType is not None else r.requestType
        scheduled_date = data.scheduledDate if "scheduledDate" in fields else r.scheduledDate
        validate_schedule(request_type, scheduled_date)

        if "teamId" in fields:
            r.teamId = self._get_team(db, data.teamId, actor.companyId).id if data.teamId else None
        if data.subject is not None:     r.subject     = data.subject
        if data.description is not None: r.description = data.description
        if data.priority is not None:    r.priority    = data.priority
        if data.notes is not None:       r.notes       = data.notes
        r.requestType   = request_type
        r.scheduledDate = scheduled_date

        log_action(db, actor.companyId, actor.id, "UPDATE", "MaintenanceRequest", r.id,
                   f"Updated request #{r.id}")
        db.commit()
        db.refresh(r)
        return _serialize(r)

    # ─── Delete ───────────────────────────────────────────────────────────────
    def delete_request(self, db: Session, request_id: int, actor: User) -> None:
        r = self._get_scoped(db, request_id, actor)
        if r.createdById != actor.id and not is_allowed(actor.role, Action.REQUEST_VIEW_ALL):
            raise ForbiddenException("You can only delete requests you created")
        if r.stage != RequestStage.NEW and not is_allowed(actor.role, Action.REQUEST_DELETE_ANY):
            raise InvalidTransitionException("Only NEW requests can be deleted")

        log_action(db, actor.companyId, actor.id, "DELETE", "MaintenanceRequest", r.id,
                   f"Deleted request #{r.id} '{r.subject}'")
        db.delete(r)
        db.commit()

    # ─── Stage transition ─────────────────────────────────────────────────────
    def transition_stage(self, db: Session, request_id: int, data: StageTransitionRequest, actor: User) -> dict:
        if not is_allowed(actor.role, Action.REQUEST_TRANSITION):
            raise ForbiddenException("Your role cannot change the stage of a request")

        r = self._get_scoped(db, request_id, actor)
        current = r.stage
        if data.expectedStage is not None and data.expectedStage != current:
            raise ConflictException(
                f"Request is now {current.value}, not {data.expectedStage.value}. Reload and try again."
            )
        if not check_transition(current, data.stage):
            return _serialize(r)

        now = utcnow()
        values = transition_values(r, data.stage, actor, now, data.duration, data.notes)
        self._write_transition(db, r, current, values, actor, now)

        if r.stage == RequestStage.SCRAP:
            self._notify_scrap_review(db, r)
        return _serialize(r, now)

    def _write_transition(
        self, db: Session, r: MaintenanceRequest,
        current: RequestStage, values: dict, actor: User, now: datetime,
        action: str = "TRANSITION",
    ) -> None:
        """
        Compare-and-swap on stage, and on the technician read when the write changes it.
        Then equipment side effects, audit, commit.
        """
        target = values.get("stage", current)
        criteria = (technician_clause(r.technicianId),) if "technicianId" in values else ()
        if not compare_and_set_stage(db, r.id, current, values, *criteria):
            db.rollback()
            logger.warning(f"Write conflict on request #{r.id}: expected {current.value}, user #{actor.id}")
            raise ConflictException()

        equipment = r.equipment
        if target == RequestStage.IN_PROGRESS and equipment.status == EquipmentStatus.ACTIVE:
            equipment.status = EquipmentStatus.UNDER_MAINTENANCE
        elif target == RequestStage.REPAIRED and equipment.status == EquipmentStatus.UNDER_MAINTENANCE:
            still_open = db.query(MaintenanceRequest).filter(
                MaintenanceRequest.equipmentId == equipment.id,
                MaintenanceRequest.id != r.id,
                MaintenanceRequest.stage == RequestStage.IN_PROGRESS,
            ).count()
            if not still_open:
                equipment.status = EquipmentStatus.ACTIVE

        description = f"Request #{r.id} {current.value} -> {target.value}"
        if "technicianId" in values:
            description += f", technician #{values['technicianId']}"
        log_action(db, actor.companyId, actor.id, action, "MaintenanceRequest", r.id, description)
        db.commit()
        db.refresh(r)
        logger.info(f"{description} by user #{actor.id}")

        if target != current:
            notify_stage_changed(r.created_by.email, r.id, current.value, target.value)

    def _notify_scrap_review(self, db: Session, r: MaintenanceRequest) -> None:
        """Scrapping a request only flags the equipment; scrapping it is a separate action."""
        managers = db.query(User).filter(
            User.companyId == r.companyId,
            User.role.in_([RoleName.ADMIN, RoleName.MAINTENANCE_MANAGER]),
            User.isActive == True,
        ).all()
        for m in managers:
            notify_equipment_review(m.email, r.equipment.id, r.equipment.name, r.id)

    # ─── Assignment ───────────────────────────────────────────────────────────
    def assign_technician(self, db: Session, request_id: int, actor: User, technician_id: int | None = None) -> dict:
        r = self._get_scoped(db, request_id, actor)
        assignee_id = resolve_assignee(r, actor, technician_id)
        technician = self._get_assignable_user(db, assignee_id, actor.companyId)

        now = utcnow()
        current = r.stage
        values = {"technicianId": technician.id, "updatedAt": now}
        if current == RequestStage.NEW:
            values.update(transition_values(r, RequestStage.IN_PROGRESS, actor, now))
            values["technicianId"] = technician.id
        self._write_transition(db, r, current, values, actor, now, action="ASSIGN")

        notify_request_assigned(technician.email, technician.name, r.id, r.subject)
        return _serialize(r, now)

    # ─── Kanban ───────────────────────────────────────────────────────────────
    def get_kanban(
        self, db: Session, actor: User,
        team_id: int | None = None,
        technician_id: int | None = None,
        priority: RequestPriority | None = None,
    ) -> dict:
        now = utcnow()
        q = db.query(MaintenanceRequest).filter(MaintenanceRequest.companyId == actor.companyId)
        q = self._visibility_filter(q, actor)
        if team_id:       q = q.filter(MaintenanceRequest.teamId == team_id)
        if technician_id: q = q.filter(MaintenanceRequest.technicianId == technician_id)
        if priority:      q = q.filter(MaintenanceRequest.priority == priority)

        board = {s.value: [] for s in RequestStage}
        for r in sorted(q.all(), key=lambda r: board_sort_key(r, now)):
            board[r.stage.value].append(_serialize(r, now))
        return board

    # ─── Calendar ─────────────────────────────────────────────────────────────
    def get_calendar(
        self, db: Session, actor: User,
        start_date: datetime, end_date: datetime,
        request_type: RequestType | None = None,
        team_id: int | None = None,
    ) -> list[dict]:
        start, end = as_utc(start_date), as_utc(end_date)
        if end < start:
            raise ValidationException("End date must not be before start date", field="endDate")

        now = utcnow()
        q = db.query(MaintenanceRequest).filter(
            MaintenanceRequest.companyId == actor.companyId,
            MaintenanceRequest.scheduledDate >= start,
            MaintenanceRequest.scheduledDate <= end,
        )
        q = self._visibility_filter(q, actor)
        if request_type: q = q.filter(MaintenanceRequest.requestType == request_type)
        if team_id:      q = q.filter(MaintenanceRequest.teamId == team_id)

        return [{
            "id":         r.id,
            "title":      r.subject,
            "start":      _iso(r.scheduledDate),
            "end":        _iso(r.scheduledDate),
            "type":       r.requestType.value,
            "stage":      r.stage.value,
            "priority":   r.priority.value,
            "isOverdue":  compute_overdue(r, now),
            "equipment":  {"id": r.equipment.id, "name": r.equipment.name},
            "technician": {"id": r.technician.id, "name": r.technician.name} if r.technician else None,
            "team":       {"id": r.team.id, "name": r.team.name} if r.team else None,
        } for r in q.order_by(MaintenanceRequest.scheduledDate.asc()).all()]

    # ─── Stats ────────────────────────────────────────────────────────────────
    def get_stats(self, db: Session, actor: User) -> dict:
        requests = db.query(MaintenanceRequest).filter(
            MaintenanceRequest.companyId == actor.companyId
        ).all()
        return summarize_requests(requests, utcnow())


maintenance_request_service = MaintenanceRequestService()

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import settings
from app.models.department import Department
from app.models.equipment import Equipment, EquipmentStatus
from app.models.equipment_category import EquipmentCategory
from app.models.maintenance_request import MaintenanceRequest, RequestStage
from app.models.role import ASSIGNABLE_ROLES
from app.models.team import MaintenanceTeam
from app.models.user import User
from app.models.work_center import WorkCenter
from app.schemas.equipment import EquipmentCreateRequest, EquipmentUpdateRequest
from app.services.dashboard_service import is_critical
from app.services.lifecycle import OPEN_STAGES, utcnow, as_utc, compute_overdue
from app.utils.audit import log_action
from app.utils.exceptions import NotFoundException, InvalidTransitionException, DuplicateEntryException

logger = logging.getLogger(__name__)


def _serialize(e: Equipment) -> dict:
    return {
        "id":               e.id,
        "name":             e.name,
        "serialNumber":     e.serialNumber,
        "description":      e.description,
        "location":         e.location,
        "healthPercentage": e.healthPercentage,
        "isCritical":       is_critical(e),
        "status":           e.status.value,
        "scrapDate":        as_utc(e.scrapDate).isoformat() if e.scrapDate else None,
        "category":    {"id": e.category.id, "name": e.category.name} if e.category else None,
        "department":  {"id": e.department.id, "name": e.department.name} if e.department else None,
        "workCenter":  {"id": e.work_center.id, "name": e.work_center.name} if e.work_center else None,
        "maintenanceTeam": {
            "id": e.maintenance_team.id, "name": e.maintenance_team.name,
        } if e.maintenance_team else None,
        "owner":      {"id": e.owner.id, "name": e.owner.name} if e.owner else None,
        "technician": {"id": e.technician.id, "name": e.technician.name} if e.technician else None,
        "openRequests": sum(1 for r in e.requests if r.stage in OPEN_STAGES),
    }


# (model, label, extra filter) for every company-scoped reference on Equipment
_REFERENCES = {
    "ownerId":           (User, "Owner", None),
    "technicianId":      (User, "Technician", lambda q: q.filter(User.role.in_(ASSIGNABLE_ROLES))),
    "maintenanceTeamId": (MaintenanceTeam, "Maintenance team", None),
    "categoryId":        (EquipmentCategory, "Category", None),
    "departmentId":      (Department, "Department", None),
    "workCenterId":      (WorkCenter, "Work center", None),
}


class EquipmentService:

    def _get_scoped(self, db: Session, equipment_id: int, company_id: int) -> Equipment:
        e = db.query(Equipment).filter(
            Equipment.id == equipment_id,
            Equipment.companyId == company_id,
        ).first()
        if not e:
            raise NotFoundException("Equipment")
        return e

    def _check_references(self, db: Session, company_id: int, values: dict) -> None:
        for field, (model, label, extra) in _REFERENCES.items():
            ref_id = values.get(field)
            if ref_id is None:
                continue
            q = db.query(model).filter(model.id == ref_id, model.companyId == company_id)
            if extra:
                q = extra(q)
            if not q.first():
                raise NotFoundException(label)

    # ─── List ─────────────────────────────────────────────────────────────────
    def list_equipment(
        self, db: Session, actor: User, page: int, limit: int,
        status: EquipmentStatus | None = None,
        category_id: int | None = None,
        department_id: int | None = None,
        team_id: int | None = None,
        search: str | None = None,
        critical: bool | None = None,
    ) -> tuple[list[dict], int]:
        q = db.query(Equipment).filter(Equipment.companyId == actor.companyId)

        if status:        q = q.filter(Equipment.status == status)
        if category_id:   q = q.filter(Equipment.categoryId == category_id)
        if department_id: q = q.filter(Equipment.departmentId == department_id)
        if team_id:       q = q.filter(Equipment.maintenanceTeamId == team_id)
        if search:
            kw = f"%{search.strip()}%"
            q = q.filter(or_(Equipment.name.ilike(kw), Equipment.serialNumber.ilike(kw)))
        if critical is True:
            q = q.filter(
                Equipment.status != EquipmentStatus.SCRAPPED,
                Equipment.healthPercentage < settings.HEALTH_CRITICAL_THRESHOLD,
            )

        total = q.count()
        items = q.order_by(Equipment.name.asc()).offset((page - 1) * limit).limit(limit).all()
        return [_serialize(e) for e in items], total

    def list_critical(self, db: Session, actor: User, limit: int = 5) -> list[dict]:
        items = db.query(Equipment).filter(
            Equipment.companyId == actor.companyId,
            Equipment.status != EquipmentStatus.SCRAPPED,
            Equipment.healthPercentage < settings.HEALTH_CRITICAL_THRESHOLD,
        ).order_by(Equipment.healthPercentage.asc()).limit(limit).all()
        return [_serialize(e) for e in items]

    # ─── Get by ID ────────────────────────────────────────────────────────────
    def get_equipment(self, db: Session, equipment_id: int, actor: User) -> dict:
        return _serialize(self._get_scoped(db, equipment_id, actor.companyId))

    def list_equipment_requests(
        self, db: Session, equipment_id: int, actor: User,
        page: int, limit: int, stage: RequestStage | None = None,
    ) -> tuple[list[dict], int]:
        self._get_scoped(db, equipment_id, actor.companyId)
        now = utcnow()
        q = db.query(MaintenanceRequest).filter(MaintenanceRequest.equipmentId == equipment_id)
        if stage:
            q = q.filter(MaintenanceRequest.stage == stage)
        total = q.count()
        items = q.order_by(MaintenanceRequest.createdAt.desc()).offset((page - 1) * limit).limit(limit).all()
        return [{
            "id":          r.id,
            "subject":     r.subject,
            "requestType": r.requestType.value,
            "stage":       r.stage.value,
            "priority":    r.priority.value,
            "isOverdue":   compute_overdue(r, now),
            "technician":  {"id": r.technician.id, "name": r.technician.name} if r.technician else None,
            "createdBy":   {"id": r.created_by.id, "name": r.created_by.name},
        } for r in items], total

    # ─── Create ───────────────────────────────────────────────────────────────
    def create_equipment(self, db: Session, data: EquipmentCreateRequest, actor: User) -> dict:
        if db.query(Equipment).filter(
            Equipment.companyId == actor.companyId,
            Equipment.serialNumber == data.serialNumber,
        ).first():
            raise DuplicateEntryException("Serial number already registered", field="serialNumber")

        values = data.model_dump()
        self._check_references(db, actor.companyId, values)

        e = Equipment(companyId=actor.companyId, status=EquipmentStatus.ACTIVE, **values)
        db.add(e)
        db.flush()
        log_action(db, actor.companyId, actor.id, "CREATE", "Equipment", e.id,
                   f"Registered equipment '{e.name}' ({e.serialNumber})")
        db.commit()
        db.refresh(e)
        return _serialize(e)

    # ─── Update ───────────────────────────────────────────────────────────────
    def update_equipment(self, db: Session, equipment_id: int, data: EquipmentUpdateRequest, actor: User) -> dict:
        e = self._get_scoped(db, equipment_id, actor.companyId)
        if e.status == EquipmentStatus.SCRAPPED:
            raise InvalidTransitionException("Scrapped equipment cannot be edited")

        values = data.model_dump(exclude_unset=True)
        self._check_references(db, actor.companyId, values)
        for field, value in values.items():
            setattr(e, field, value)

        log_action(db, actor.companyId, actor.id, "UPDATE", "Equipment", e.id,
                   f"Updated equipment '{e.name}'")
        db.commit()
        db.refresh(e)
        return _serialize(e)

    # ─── Scrap ────────────────────────────────────────────────────────────────
    def scrap_equipment(self, db: Session, equipment_id: int, actor: User, reason: str | None = None) -> dict:
        e = self._get_scoped(db, equipment_id, actor.companyId)
        if e.status == EquipmentStatus.SCRAPPED:
            raise InvalidTransitionException("Equipment is already scrapped")

        e.status    = EquipmentStatus.SCRAPPED
        e.scrapDate = utcnow()
        if reason:
            e.description = f"{e.description or ''}\n\nScrap Reason: {reason}".strip()

        log_action(db, actor.companyId, actor.id, "SCRAP", "Equipment", e.id,
                   f"Scrapped equipment '{e.name}'" + (f": {reason}" if reason else ""))
        db.commit()
        db.refresh(e)
        logger.info(f"Equipment #{e.id} scrapped by user #{actor.id}")
        return _serialize(e)


equipment_service = EquipmentService()

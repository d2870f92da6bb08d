from datetime import datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.models.equipment import Equipment, EquipmentStatus
from app.models.maintenance_request import (
    MaintenanceRequest, RequestStage, RequestType, RequestPriority,
)
from app.models.role import ASSIGNABLE_ROLES
from app.models.team import MaintenanceTeam
from app.models.user import User
from app.services.lifecycle import OPEN_STAGES, utcnow, compute_overdue


# ─── Pure aggregation ─────────────────────────────────────────────────────────
def is_critical(equipment: Equipment) -> bool:
    return (
        equipment.status != EquipmentStatus.SCRAPPED
        and equipment.healthPercentage < settings.HEALTH_CRITICAL_THRESHOLD
    )


def health_band(health: int) -> str:
    if health < settings.HEALTH_CRITICAL_THRESHOLD: return "critical"
    if health < settings.HEALTH_WARNING_THRESHOLD:  return "warning"
    if health < 80:                                 return "good"
    return "excellent"


def summarize_requests(requests: list[MaintenanceRequest], now: datetime) -> dict:
    """Counts by stage / type / priority plus open, overdue and average repair time."""
    by_stage    = {s.value: 0 for s in RequestStage}
    by_type     = {t.value: 0 for t in RequestType}
    by_priority = {p.value: 0 for p in RequestPriority}
    overdue = 0
    durations = []

    for r in requests:
        by_stage[r.stage.value] += 1
        by_type[r.requestType.value] += 1
        by_priority[r.priority.value] += 1
        if compute_overdue(r, now):
            overdue += 1
        if r.duration is not None:
            durations.append(r.duration)

    return {
        "total":       len(requests),
        "open":        sum(by_stage[s.value] for s in OPEN_STAGES),
        "overdue":     overdue,
        "avgDuration": round(sum(durations) / len(durations), 2) if durations else 0,
        "byStage":     by_stage,
        "byType":      by_type,
        "byPriority":  by_priority,
    }


def summarize_equipment(equipment: list[Equipment]) -> dict:
    by_status = {s.value: 0 for s in EquipmentStatus}
    for e in equipment:
        by_status[e.status.value] += 1
    return {
        "total":            len(equipment),
        "active":           by_status[EquipmentStatus.ACTIVE.value],
        "underMaintenance": by_status[EquipmentStatus.UNDER_MAINTENANCE.value],
        "scrapped":         by_status[EquipmentStatus.SCRAPPED.value],
        "critical":         sum(1 for e in equipment if is_critical(e)),
        "criticalThreshold": settings.HEALTH_CRITICAL_THRESHOLD,
    }


def technician_load(technicians: list[User], requests: list[MaintenanceRequest]) -> dict:
    active = {t.id: 0 for t in technicians}
    for r in requests:
        if r.stage in OPEN_STAGES and r.technicianId in active:
            active[r.technicianId] += 1

    total = len(technicians)
    assigned = sum(active.values())
    capacity = total * settings.MAX_REQUESTS_PER_TECHNICIAN
    return {
        "total":                 total,
        "activeAssignments":     assigned,
        "load":                  round(assigned / total, 2) if total else 0,
        "utilizationPercentage": min(100, round(assigned / capacity * 100)) if capacity else 0,
        "technicians": [
            {"id": t.id, "name": t.name, "activeRequests": active[t.id]}
            for t in technicians
        ],
    }


# ─── Queries ──────────────────────────────────────────────────────────────────
class DashboardService:

    def _requests(self, db: Session, company_id: int) -> list[MaintenanceRequest]:
        return db.query(MaintenanceRequest).filter(MaintenanceRequest.companyId == company_id).all()

    def _equipment(self, db: Session, company_id: int) -> list[Equipment]:
        return db.query(Equipment).filter(Equipment.companyId == company_id).all()

    def get_dashboard_aggregates(self, db: Session, company_id: int, now: datetime | None = None) -> dict:
        """Recomputed on every call: no caching, no stored counters."""
        now = now or utcnow()
        requests  = self._requests(db, company_id)
        equipment = self._equipment(db, company_id)
        technicians = db.query(User).filter(
            User.companyId == company_id,
            User.role.in_(ASSIGNABLE_ROLES),
            User.isActive == True,
        ).order_by(User.name).all()

        summary = summarize_requests(requests, now)
        return {
            "byStage":                summary["byStage"],
            "byType":                 summary["byType"],
            "byPriority":             summary["byPriority"],
            "totalRequests":          summary["total"],
            "openCount":              summary["open"],
            "overdueCount":           summary["overdue"],
            "avgDuration":            summary["avgDuration"],
            "criticalEquipmentCount": sum(1 for e in equipment if is_critical(e)),
            "equipment":              summarize_equipment(equipment),
            "technicians":            technician_load(technicians, requests),
            "teams":                  db.query(MaintenanceTeam).filter(
                                          MaintenanceTeam.companyId == company_id).count(),
        }

    def requests_by_team(self, db: Session, company_id: int) -> list[dict]:
        teams = db.query(MaintenanceTeam).filter(
            MaintenanceTeam.companyId == company_id
        ).order_by(MaintenanceTeam.name).all()
        result = []
        for team in teams:
            by_stage = {s.value: 0 for s in RequestStage}
            for r in team.requests:
                by_stage[r.stage.value] += 1
            result.append({
                "id":      team.id,
                "name":    team.name,
                "total":   len(team.requests),
                "byStage": by_stage,
            })
        return sorted(result, key=lambda x: -x["total"])

    def equipment_health_distribution(self, db: Session, company_id: int) -> dict:
        bands = {"critical": 0, "warning": 0, "good": 0, "excellent": 0}
        for e in self._equipment(db, company_id):
            if e.status == EquipmentStatus.SCRAPPED:
                continue
            bands[health_band(e.healthPercentage)] += 1
        critical, warning = settings.HEALTH_CRITICAL_THRESHOLD, settings.HEALTH_WARNING_THRESHOLD
        return {
            "distribution": {
                "critical":  {"count": bands["critical"],  "range": f"0-{critical - 1}%"},
                "warning":   {"count": bands["warning"],   "range": f"{critical}-{warning - 1}%"},
                "good":      {"count": bands["good"],      "range": f"{warning}-79%"},
                "excellent": {"count": bands["excellent"], "range": "80-100%"},
            },
            "total": sum(bands.values()),
        }


dashboard_service = DashboardService()

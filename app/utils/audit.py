from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog


def log_action(
    db: Session,
    company_id: int,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    description: str | None = None,
) -> None:
    """
    Write an audit log entry.

    Args:
        db:          Active DB session (adds but does NOT commit, caller commits)
        company_id:  Tenant the entry belongs to
        user_id:     ID of user performing the action (None = system action)
        action:      Verb: CREATE, UPDATE, DELETE, TRANSITION, ASSIGN, SCRAP, etc.
        entity_type: Model name: "MaintenanceRequest", "Equipment", "MaintenanceTeam", etc.
        entity_id:   Primary key of the affected record
        description: Human-readable description (shown in audit log UI)

    Usage:
        log_action(db, actor.companyId, actor.id, "TRANSITION", "MaintenanceRequest", r.id,
                   f"Request #{r.id} moved NEW -> IN_PROGRESS")
        db.commit()
    """
    entry = AuditLog(
        companyId=company_id,
        userId=user_id,
        action=action,
        entityType=entity_type,
        entityId=entity_id,
        description=description,
    )
    db.add(entry)
    # Do NOT commit here; the caller's transaction commits everything atomically

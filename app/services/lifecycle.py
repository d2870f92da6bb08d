"""
Maintenance request lifecycle rules.

Pure functions only: no sessions, no commits. The request service reads the
current row, asks these functions what is allowed, and performs the write.

    NEW ──assign/start──▶ IN_PROGRESS ──complete (duration)──▶ REPAIRED
     │                        │
     └────────scrap───────────┴──────────────────────────────▶ SCRAP

REPAIRED and SCRAP are terminal.
"""
from datetime import datetime, timezone

from app.models.maintenance_request import RequestStage, RequestType, RequestPriority
from app.models.role import RoleName
from app.models.user import User
from app.utils.permissions import Action, is_allowed
from app.utils.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    ValidationException,
)

ALLOWED_TRANSITIONS: dict[RequestStage, frozenset[RequestStage]] = {
    RequestStage.NEW:         frozenset({RequestStage.IN_PROGRESS, RequestStage.SCRAP}),
    RequestStage.IN_PROGRESS: frozenset({RequestStage.REPAIRED, RequestStage.SCRAP}),
    RequestStage.REPAIRED:    frozenset(),
    RequestStage.SCRAP:       frozenset(),
}

OPEN_STAGES     = (RequestStage.NEW, RequestStage.IN_PROGRESS)
TERMINAL_STAGES = (RequestStage.REPAIRED, RequestStage.SCRAP)

PRIORITY_RANK = {
    RequestPriority.LOW:    0,
    RequestPriority.MEDIUM: 1,
    RequestPriority.HIGH:   2,
}


# ─── Time helpers ─────────────────────────────────────────────────────────────
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC. Naive values (SQLite round-trips) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ─── Stage transition guard ───────────────────────────────────────────────────
def is_terminal(stage: RequestStage) -> bool:
    return stage in TERMINAL_STAGES


def check_transition(current: RequestStage, target: RequestStage) -> bool:
    """
    Return True if ``current -> target`` is a real move, False if it is a
    same-stage no-op. Raise InvalidTransitionException for any other edge.
    """
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        if is_terminal(current):
            raise InvalidTransitionException(
                f"Request is {current.value}, a closed stage; it cannot move to {target.value}"
            )
        raise InvalidTransitionException(
            f"Cannot move a request from {current.value} to {target.value}"
        )
    return True


def transition_values(
    request,
    target: RequestStage,
    actor: User,
    now: datetime,
    duration: float | None = None,
    notes: str | None = None,
) -> dict:
    """
    Column values to write for an allowed move to ``target``.
    Raises ValidationException when the target stage needs fields that are missing.
    """
    values = {"stage": target, "updatedAt": now}

    if target == RequestStage.IN_PROGRESS:
        values["startDate"] = request.startDate or now
        # Picking up an unassigned card from the board claims it
        if request.technicianId is None and actor.role == RoleName.TECHNICIAN:
            values["technicianId"] = actor.id

    elif target == RequestStage.REPAIRED:
        if duration is None:
            raise ValidationException("Duration (hours) is required to mark a request as repaired",
                                      field="duration")
        if duration <= 0:
            raise ValidationException("Duration must be a positive number of hours", field="duration")
        values["duration"]       = float(duration)
        values["completionDate"] = now

    if notes is not None:
        values["notes"] = notes
    return values


# ─── Creation rules ───────────────────────────────────────────────────────────
def validate_schedule(request_type: RequestType, scheduled_date: datetime | None) -> None:
    if request_type == RequestType.PREVENTIVE and scheduled_date is None:
        raise ValidationException("Preventive requests require a scheduled date", field="scheduledDate")


# ─── Assignment policy ────────────────────────────────────────────────────────
def resolve_assignee(request, actor: User, technician_id: int | None) -> int:
    """
    Decide which user ends up as the request's technician.

    - ADMIN / MAINTENANCE_MANAGER: anyone, including re-assignment.
    - TECHNICIAN: only themselves, never over another technician, and only
      on their own team's requests.
    - Anyone else: forbidden.
    Omitting ``technician_id`` means self-assignment.
    """
    can_assign_any = is_allowed(actor.role, Action.REQUEST_ASSIGN_ANY)
    if not can_assign_any and not is_allowed(actor.role, Action.REQUEST_SELF_ASSIGN):
        raise ForbiddenException("Your role cannot assign technicians")

    assignee_id = technician_id if technician_id is not None else actor.id
    if not can_assign_any:
        if assignee_id != actor.id:
            raise ForbiddenException("Technicians can only assign requests to themselves")
        if request.technicianId is not None and request.technicianId != actor.id:
            raise ForbiddenException("Request is already assigned to another technician")
        if request.teamId is not None and request.teamId not in actor.team_ids:
            raise ForbiddenException("You are not a member of the team handling this request")

    # After the role rules: Forbidden takes precedence over InvalidTransition
    if is_terminal(request.stage):
        raise InvalidTransitionException(
            f"Request is {request.stage.value}; closed requests cannot be assigned"
        )
    return assignee_id


# ─── Derived fields ───────────────────────────────────────────────────────────
def compute_overdue(request, now: datetime | None = None) -> bool:
    """True iff a scheduled date exists, has passed, and the request is still open."""
    if request.scheduledDate is None or is_terminal(request.stage):
        return False
    return as_utc(request.scheduledDate) < as_utc(now or utcnow())


def board_sort_key(request, now: datetime):
    """Overdue first, then HIGH to LOW priority, then oldest first."""
    return (
        not compute_overdue(request, now),
        -PRIORITY_RANK[request.priority],
        as_utc(request.createdAt) or now,
    )

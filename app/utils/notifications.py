import logging

logger = logging.getLogger(__name__)


# Fire-and-forget notification events. Delivery (SMTP / push) is an external
# collaborator; until one is wired in, events are written to the log.

def notify_request_assigned(to_email: str, technician_name: str, request_id: int, subject: str) -> bool:
    logger.info(f"[REQUEST ASSIGNED] To={to_email} | {technician_name} | Request#{request_id} '{subject}'")
    return True


def notify_request_created(to_email: str, request_id: int, subject: str, team_name: str) -> bool:
    logger.info(f"[REQUEST CREATED] To={to_email} | Team={team_name} | Request#{request_id} '{subject}'")
    return True


def notify_stage_changed(
    to_email: str,
    request_id: int,
    old_stage: str,
    new_stage: str,
) -> bool:
    logger.info(f"[STAGE UPDATED] To={to_email} | Request#{request_id} | {old_stage} -> {new_stage}")
    return True


def notify_equipment_review(
    to_email: str,
    equipment_id: int,
    equipment_name: str,
    request_id: int,
) -> bool:
    """Request was scrapped: the linked equipment should be reviewed for scrapping."""
    logger.info(
        f"[EQUIPMENT REVIEW] To={to_email} | Equipment#{equipment_id} '{equipment_name}' "
        f"| scrapped via Request#{request_id}"
    )
    return True

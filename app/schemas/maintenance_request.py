from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

from app.models.maintenance_request import RequestType, RequestStage, RequestPriority
from app.services.lifecycle import as_utc


def _check_subject(v: str) -> str:
    v = v.strip()
    if len(v) < 3 or len(v) > 200:
        raise ValueError("Subject must be between 3 and 200 characters")
    return v


def _check_long_text(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if len(v) > 2000:
        raise ValueError("Must be less than 2000 characters")
    return v


class RequestCreateRequest(BaseModel):
    subject:       str
    description:   Optional[str]             = None
    requestType:   RequestType               = RequestType.CORRECTIVE
    priority:      RequestPriority           = RequestPriority.MEDIUM
    equipmentId:   int
    scheduledDate: Optional[datetime]        = None
    technicianId:  Optional[int]             = None
    teamId:        Optional[int]             = None

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v): return _check_subject(v)

    @field_validator("description")
    @classmethod
    def check_description(cls, v): return _check_long_text(v)

    @field_validator("scheduledDate")
    @classmethod
    def normalize_scheduled(cls, v): return as_utc(v)


class RequestUpdateRequest(BaseModel):
    """Editable fields. Stage changes go through the stage endpoint only."""
    subject:       Optional[str]             = None
    description:   Optional[str]             = None
    requestType:   Optional[RequestType]     = None
    priority:      Optional[RequestPriority] = None
    scheduledDate: Optional[datetime]        = None
    teamId:        Optional[int]             = None
    notes:         Optional[str]             = None

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v):
        return _check_subject(v) if v is not None else v

    @field_validator("description", "notes")
    @classmethod
    def check_text(cls, v): return _check_long_text(v)

    @field_validator("scheduledDate")
    @classmethod
    def normalize_scheduled(cls, v): return as_utc(v)


class StageTransitionRequest(BaseModel):
    stage:         RequestStage
    duration:      Optional[float]        = None   # hours, required for REPAIRED
    notes:         Optional[str]          = None
    # Stage the client last saw (e.g. the Kanban column a card was dragged from)
    expectedStage: Optional[RequestStage] = None

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        if v is not None and v < 0: raise ValueError("Duration must be a positive number")
        return v

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v): return _check_long_text(v)


class AssignTechnicianRequest(BaseModel):
    technicianId: Optional[int] = None   # omitted = assign to yourself

from pydantic import BaseModel, field_validator
from typing import Optional


class TeamCreateRequest(BaseModel):
    name:        str
    description: Optional[str] = None
    memberIds:   list[int]     = []
    leadId:      Optional[int] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        if not v.strip(): raise ValueError("Team name cannot be empty")
        return v.strip()


class TeamMemberAddRequest(BaseModel):
    userId: int
    isLead: bool = False


class TeamMemberUpdateRequest(BaseModel):
    isLead: bool

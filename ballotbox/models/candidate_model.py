from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ballotbox.models.vote_model import new_id, utcnow


class Candidate(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    party: Optional[str] = None
    vote_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    party: Optional[str] = Field(None, max_length=255)


class CandidateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    party: Optional[str] = Field(None, max_length=255)

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from ballotbox.models.vote_model import new_id, utcnow


class Voter(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    has_voted: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class VoterCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    email: EmailStr


class VoterUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    email: Optional[EmailStr] = None

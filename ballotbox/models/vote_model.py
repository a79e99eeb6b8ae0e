import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Vote(BaseModel):
    id: str = Field(default_factory=new_id)
    voter_id: str
    candidate_id: str
    voted_at: datetime = Field(default_factory=utcnow)


class CastVoteRequest(BaseModel):
    voter_id: str = Field(..., min_length=1, examples=["550e8400-e29b-41d4-a716-446655440000"])
    candidate_id: str = Field(..., min_length=1, examples=["660e9511-f30c-52e5-b827-557766551111"])


class VoterVoteStatus(BaseModel):
    voter_id: str
    has_voted: bool
    vote: Optional[Vote] = None


class VoteList(BaseModel):
    votes: List[Vote]
    total: int

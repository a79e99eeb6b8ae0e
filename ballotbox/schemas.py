from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class CandidateStatistic(BaseModel):
    candidate_id: str
    candidate_name: str
    party: Optional[str] = None
    vote_count: int
    percentage: str  # two decimals, e.g. "42.86"


class VotingStatistics(BaseModel):
    total_votes: int
    total_voters: int
    voters_who_voted: int
    participation_rate: str
    per_candidate: List[CandidateStatistic]


class VoterStats(BaseModel):
    total: int
    voted: int
    pending: int
    participation_rate: str


class CandidateStats(BaseModel):
    total: int
    with_votes: int
    without_votes: int
    total_votes: int
    average_votes: str


class TallyDrift(BaseModel):
    candidate_id: str
    recorded: int
    counted: int


class VoterDrift(BaseModel):
    voter_id: str
    has_voted: bool
    has_vote: bool


class AuditReport(BaseModel):
    consistent: bool
    total_votes: int
    duplicate_voter_ids: List[str] = Field(default_factory=list)
    tally_drift: List[TallyDrift] = Field(default_factory=list)
    voter_drift: List[VoterDrift] = Field(default_factory=list)
    orphan_vote_ids: List[str] = Field(default_factory=list)


class PaginationMeta(BaseModel):
    next_cursor: Optional[str] = None
    has_more: bool
    total_count: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: PaginationMeta

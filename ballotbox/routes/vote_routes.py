from fastapi import APIRouter, Depends, Query

from ballotbox.dependencies import get_tally_service, get_vote_service
from ballotbox.models.vote_model import CastVoteRequest, Vote, VoteList, VoterVoteStatus
from ballotbox.schemas import AuditReport, CandidateStatistic, VotingStatistics
from ballotbox.tally import TallyService
from ballotbox.voting import VoteService

vote_router = APIRouter(prefix="/votes", tags=["Votes"])


@vote_router.post("", response_model=Vote, status_code=201)
def cast_vote(body: CastVoteRequest, service: VoteService = Depends(get_vote_service)):
    """
    Casts a vote. 404 for an unknown voter or candidate, 409 when the
    voter has already voted, 503 when the transaction could not commit.
    """
    return service.cast_vote(body.voter_id, body.candidate_id)


@vote_router.get("", response_model=VoteList)
def list_votes(service: VoteService = Depends(get_vote_service)):
    votes = service.list_votes()
    return VoteList(votes=votes, total=len(votes))


@vote_router.get("/statistics", response_model=VotingStatistics)
def get_statistics(service: TallyService = Depends(get_tally_service)):
    return service.statistics()


@vote_router.get("/ranking", response_model=list[CandidateStatistic])
def get_ranking(
    limit: int = Query(10, ge=1, le=100),
    service: TallyService = Depends(get_tally_service),
):
    return service.ranking(limit)


@vote_router.get("/audit", response_model=AuditReport)
def audit_votes(service: TallyService = Depends(get_tally_service)):
    """Checks the ledger against the stored tallies and has_voted flags."""
    return service.audit()


@vote_router.get("/voter/{voter_id}", response_model=VoterVoteStatus)
def get_vote_by_voter(voter_id: str, service: VoteService = Depends(get_vote_service)):
    vote = service.get_vote_by_voter(voter_id)
    return VoterVoteStatus(voter_id=voter_id, has_voted=vote is not None, vote=vote)


@vote_router.get("/{vote_id}", response_model=Vote)
def get_vote(vote_id: str, service: VoteService = Depends(get_vote_service)):
    return service.get_vote(vote_id)

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ballotbox import crud
from ballotbox.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ballotbox.dependencies import get_store, get_tally_service
from ballotbox.models.candidate_model import Candidate, CandidateCreate, CandidateUpdate
from ballotbox.schemas import CandidateStats, Page
from ballotbox.tally import TallyService

router = APIRouter(prefix="/candidates", tags=["Candidates"])


@router.post("", response_model=Candidate, status_code=201)
def create_candidate(body: CandidateCreate, store=Depends(get_store)):
    return crud.create_candidate(store, body)


@router.get("", response_model=Page[Candidate])
def list_candidates(
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    party: Optional[str] = None,
    search: Optional[str] = None,
    min_votes: Optional[int] = Query(None, ge=0),
    store=Depends(get_store),
):
    return crud.list_candidates(
        store, cursor=cursor, limit=limit, party=party, search=search, min_votes=min_votes
    )


@router.get("/stats", response_model=CandidateStats)
def candidate_stats(service: TallyService = Depends(get_tally_service)):
    return service.candidate_stats()


@router.get("/{candidate_id}", response_model=Candidate)
def get_candidate(candidate_id: str, store=Depends(get_store)):
    return crud.get_candidate(store, candidate_id)


@router.patch("/{candidate_id}", response_model=Candidate)
def update_candidate(candidate_id: str, body: CandidateUpdate, store=Depends(get_store)):
    return crud.update_candidate(store, candidate_id, body)


@router.delete("/{candidate_id}", status_code=204)
def delete_candidate(candidate_id: str, store=Depends(get_store)):
    crud.delete_candidate(store, candidate_id)
    return Response(status_code=204)

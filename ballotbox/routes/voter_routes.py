from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ballotbox import crud
from ballotbox.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ballotbox.dependencies import get_store, get_tally_service
from ballotbox.models.voter_model import Voter, VoterCreate, VoterUpdate
from ballotbox.schemas import Page, VoterStats
from ballotbox.tally import TallyService

voter_router = APIRouter(prefix="/voters", tags=["Voters"])


@voter_router.post("", response_model=Voter, status_code=201)
def create_voter(body: VoterCreate, store=Depends(get_store)):
    return crud.create_voter(store, body)


@voter_router.get("", response_model=Page[Voter])
def list_voters(
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    has_voted: Optional[bool] = None,
    search: Optional[str] = None,
    store=Depends(get_store),
):
    return crud.list_voters(store, cursor=cursor, limit=limit, has_voted=has_voted, search=search)


@voter_router.get("/stats", response_model=VoterStats)
def voter_stats(service: TallyService = Depends(get_tally_service)):
    return service.voter_stats()


@voter_router.get("/{voter_id}", response_model=Voter)
def get_voter(voter_id: str, store=Depends(get_store)):
    return crud.get_voter(store, voter_id)


@voter_router.patch("/{voter_id}", response_model=Voter)
def update_voter(voter_id: str, body: VoterUpdate, store=Depends(get_store)):
    return crud.update_voter(store, voter_id, body)


@voter_router.delete("/{voter_id}", status_code=204)
def delete_voter(voter_id: str, store=Depends(get_store)):
    crud.delete_voter(store, voter_id)
    return Response(status_code=204)

from fastapi import Depends, Request

from ballotbox.tally import TallyService
from ballotbox.voting import VoteService


def get_store(request: Request):
    """The storage handle owned by the running application."""
    return request.app.state.store


def get_vote_service(store=Depends(get_store)) -> VoteService:
    return VoteService(store)


def get_tally_service(store=Depends(get_store)) -> TallyService:
    return TallyService(store)

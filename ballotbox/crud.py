# ballotbox/crud.py
# Voter and candidate registry. Never writes has_voted or vote_count.
import logging
from typing import Callable, List, Optional, TypeVar

from ballotbox.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ballotbox.errors import Conflict, NotFound
from ballotbox.models.candidate_model import Candidate, CandidateCreate, CandidateUpdate
from ballotbox.models.voter_model import Voter, VoterCreate, VoterUpdate
from ballotbox.schemas import Page, PaginationMeta

logger = logging.getLogger(__name__)

T = TypeVar("T")


def paginate(items: List[T], cursor: Optional[str], limit: int, key: Callable[[T], str]) -> Page:
    """
    Cursor pagination over items in their listing order.
    The cursor is the key of the last item seen; the next page starts right
    after it. An unknown cursor yields an empty page.
    """
    limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
    total = len(items)
    if cursor:
        keys = [key(item) for item in items]
        items = items[keys.index(cursor) + 1:] if cursor in keys else []
    page = items[:limit]
    has_more = len(items) > limit
    return Page(
        data=page,
        pagination=PaginationMeta(
            next_cursor=key(page[-1]) if has_more else None,
            has_more=has_more,
            total_count=total,
        ),
    )


# --- Voters ---
def create_voter(store, data: VoterCreate) -> Voter:
    voter = Voter(name=data.name, email=data.email.lower())

    def _create(tx):
        if tx.find_voter_by_email(voter.email):
            raise Conflict("email_exists")
        if tx.find_candidate_by_name(voter.email):
            raise Conflict("voter_is_candidate")
        return tx.insert_voter(voter)

    created = store.with_transaction(_create)
    logger.info(f"Voter {created.id} registered")
    return created


def get_voter(store, voter_id: str) -> Voter:
    voter = store.with_transaction(lambda tx: tx.get_voter(voter_id))
    if voter is None:
        raise NotFound("voter", voter_id)
    return voter


def list_voters(
    store,
    cursor: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    has_voted: Optional[bool] = None,
    search: Optional[str] = None,
) -> Page[Voter]:
    voters = store.with_transaction(lambda tx: tx.list_voters())
    if has_voted is not None:
        voters = [v for v in voters if v.has_voted == has_voted]
    if search:
        needle = search.lower()
        voters = [v for v in voters if needle in v.name.lower() or needle in v.email]
    return paginate(voters, cursor, limit, key=lambda v: v.id)


def update_voter(store, voter_id: str, data: VoterUpdate) -> Voter:
    fields = data.model_dump(exclude_none=True)
    if "email" in fields:
        fields["email"] = fields["email"].lower()

    def _update(tx):
        voter = tx.get_voter(voter_id)
        if voter is None:
            raise NotFound("voter", voter_id)
        if "email" in fields and fields["email"] != voter.email and tx.find_voter_by_email(fields["email"]):
            raise Conflict("email_exists")
        if not fields:
            return voter
        return tx.update_voter_fields(voter_id, fields)

    return store.with_transaction(_update)


def delete_voter(store, voter_id: str) -> None:
    def _delete(tx):
        voter = tx.get_voter(voter_id)
        if voter is None:
            raise NotFound("voter", voter_id)
        if voter.has_voted:
            raise Conflict("voter_has_voted")
        if not tx.delete_voter(voter_id):
            # changed between the read and the conditional delete
            if tx.get_voter(voter_id) is None:
                raise NotFound("voter", voter_id)
            raise Conflict("voter_has_voted")

    store.with_transaction(_delete)
    logger.info(f"Voter {voter_id} deleted")


# --- Candidates ---
def create_candidate(store, data: CandidateCreate) -> Candidate:
    candidate = Candidate(name=data.name, party=data.party)

    def _create(tx):
        if tx.find_candidate_by_name(candidate.name):
            raise Conflict("name_exists")
        if tx.find_voter_by_name(candidate.name):
            raise Conflict("candidate_is_voter")
        return tx.insert_candidate(candidate)

    created = store.with_transaction(_create)
    logger.info(f"Candidate {created.id} registered")
    return created


def get_candidate(store, candidate_id: str) -> Candidate:
    candidate = store.with_transaction(lambda tx: tx.get_candidate(candidate_id))
    if candidate is None:
        raise NotFound("candidate", candidate_id)
    return candidate


def list_candidates(
    store,
    cursor: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    party: Optional[str] = None,
    search: Optional[str] = None,
    min_votes: Optional[int] = None,
) -> Page[Candidate]:
    candidates = store.with_transaction(lambda tx: tx.list_candidates())
    if party:
        candidates = [c for c in candidates if party.lower() in (c.party or "").lower()]
    if search:
        candidates = [c for c in candidates if search.lower() in c.name.lower()]
    if min_votes is not None:
        candidates = [c for c in candidates if c.vote_count >= min_votes]
    # Most votes first, id breaks ties
    candidates.sort(key=lambda c: (-c.vote_count, c.id))
    return paginate(candidates, cursor, limit, key=lambda c: c.id)


def update_candidate(store, candidate_id: str, data: CandidateUpdate) -> Candidate:
    fields = data.model_dump(exclude_none=True)

    def _update(tx):
        candidate = tx.get_candidate(candidate_id)
        if candidate is None:
            raise NotFound("candidate", candidate_id)
        if "name" in fields and fields["name"].lower() != candidate.name.lower():
            if tx.find_candidate_by_name(fields["name"]):
                raise Conflict("name_exists")
        if not fields:
            return candidate
        return tx.update_candidate_fields(candidate_id, fields)

    return store.with_transaction(_update)


def delete_candidate(store, candidate_id: str) -> None:
    def _delete(tx):
        candidate = tx.get_candidate(candidate_id)
        if candidate is None:
            raise NotFound("candidate", candidate_id)
        if candidate.vote_count > 0:
            raise Conflict("candidate_has_votes")
        if not tx.delete_candidate(candidate_id):
            if tx.get_candidate(candidate_id) is None:
                raise NotFound("candidate", candidate_id)
            raise Conflict("candidate_has_votes")

    store.with_transaction(_delete)
    logger.info(f"Candidate {candidate_id} deleted")

# ballotbox/voting.py
import logging
from typing import List, Optional

from ballotbox.errors import BallotError, Conflict, DuplicateVoteError, NotFound
from ballotbox.models.vote_model import Vote

logger = logging.getLogger(__name__)


class VoteService:
    """
    Casts votes and reads back the ledger.

    The store is any substrate exposing with_transaction(fn); see
    ballotbox.storage and ballotbox.storage_mongo.
    """

    def __init__(self, store):
        self.store = store

    def cast_vote(self, voter_id: str, candidate_id: str) -> Vote:
        """
        Record one vote atomically.

        Rules, checked in order inside the transaction:
        - the voter exists
        - the voter has not voted yet
        - the candidate exists
        Then the vote is inserted, the voter is marked as voted and the
        candidate's tally goes up by one. All three writes commit together
        or not at all.

        The has_voted read is only a fast path. The ledger's unique index on
        voter_id is what rejects a second vote when two casts race, and
        its violation surfaces as Conflict("already_voted") like the fast path.
        """
        logger.info(f"Casting vote: voter={voter_id} candidate={candidate_id}")

        def _cast(tx) -> Vote:
            voter = tx.get_voter(voter_id)
            if voter is None:
                logger.warning(f"Vote attempt with unknown voter {voter_id}")
                raise NotFound("voter", voter_id)

            if voter.has_voted:
                logger.warning(f"Duplicate vote attempt by voter {voter_id}")
                raise Conflict("already_voted")

            candidate = tx.get_candidate(candidate_id)
            if candidate is None:
                logger.warning(f"Vote attempt for unknown candidate {candidate_id}")
                raise NotFound("candidate", candidate_id)

            try:
                vote = tx.insert_vote(voter_id, candidate_id)
            except DuplicateVoteError:
                logger.warning(f"Ledger rejected a second vote for voter {voter_id}")
                raise Conflict("already_voted")

            if not tx.mark_voted(voter_id):
                # voter flipped to has_voted (or vanished) since the read above
                raise Conflict("already_voted")

            if not tx.increment_tally(candidate_id):
                raise NotFound("candidate", candidate_id)

            return vote

        try:
            vote = self.store.with_transaction(_cast)
        except BallotError as e:
            if e.retryable or e.status_code >= 500:
                logger.error(f"Vote by {voter_id} not recorded: {e.message}")
            raise

        logger.info(f"Vote {vote.id} recorded: voter={voter_id} candidate={candidate_id}")
        return vote

    def list_votes(self) -> List[Vote]:
        return self.store.with_transaction(lambda tx: tx.list_votes())

    def get_vote(self, vote_id: str) -> Vote:
        vote = self.store.with_transaction(lambda tx: tx.get_vote(vote_id))
        if vote is None:
            raise NotFound("vote", vote_id)
        return vote

    def get_vote_by_voter(self, voter_id: str) -> Optional[Vote]:
        """The voter's vote, or None when they have not voted."""
        return self.store.with_transaction(lambda tx: tx.get_vote_by_voter(voter_id))

    def has_voter_voted(self, voter_id: str) -> bool:
        return self.get_vote_by_voter(voter_id) is not None

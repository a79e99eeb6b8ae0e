def snapshot(store) -> dict:
    """Copy of every table in the store, for before/after comparisons."""
    return store.with_transaction(
        lambda tx: {
            "voters": [v.model_dump() for v in tx.list_voters()],
            "candidates": [c.model_dump() for c in tx.list_candidates()],
            "votes": [v.model_dump() for v in tx.list_votes()],
        }
    )


def assert_invariants(store) -> None:
    """One vote per voter, tallies match the ledger, has_voted matches the ledger."""
    voters, candidates, votes = store.with_transaction(
        lambda tx: (tx.list_voters(), tx.list_candidates(), tx.list_votes())
    )
    voter_ids = [v.voter_id for v in votes]
    assert len(voter_ids) == len(set(voter_ids))
    for candidate in candidates:
        assert candidate.vote_count == sum(1 for v in votes if v.candidate_id == candidate.id)
    for voter in voters:
        assert voter.has_voted == (voter.id in voter_ids)

"""Tests for the vote casting transaction."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from ballotbox.errors import Conflict, NotFound, TransactionAborted
from ballotbox.models.candidate_model import Candidate
from ballotbox.models.voter_model import Voter
from ballotbox.storage import InMemoryStorage, InMemoryTransaction
from ballotbox.voting import VoteService
from tests.helpers import assert_invariants, snapshot


def _cast_outcome(service, voter_id, candidate_id):
    try:
        service.cast_vote(voter_id, candidate_id)
        return "ok"
    except Conflict as e:
        return e.reason


class TestCastVote:
    def test_cast_records_vote_and_updates_counters(self, store, votes, make_voter, make_candidate):
        a = make_voter()
        x = make_candidate()

        vote = votes.cast_vote(a.id, x.id)

        assert vote.voter_id == a.id
        assert vote.candidate_id == x.id
        assert vote.voted_at.tzinfo is not None
        assert store.with_transaction(lambda tx: tx.get_candidate(x.id)).vote_count == 1
        assert store.with_transaction(lambda tx: tx.get_voter(a.id)).has_voted is True
        assert_invariants(store)

    def test_second_cast_for_same_voter_is_rejected(self, store, votes, make_voter, make_candidate):
        a = make_voter()
        x = make_candidate()
        y = make_candidate()
        votes.cast_vote(a.id, x.id)

        with pytest.raises(Conflict) as exc:
            votes.cast_vote(a.id, y.id)

        assert exc.value.reason == "already_voted"
        assert store.with_transaction(lambda tx: tx.get_candidate(y.id)).vote_count == 0
        assert store.with_transaction(lambda tx: tx.get_candidate(x.id)).vote_count == 1
        assert len(votes.list_votes()) == 1
        assert_invariants(store)

    def test_repeat_cast_for_same_candidate_is_rejected(self, store, votes, make_voter, make_candidate):
        a = make_voter()
        x = make_candidate()
        votes.cast_vote(a.id, x.id)

        with pytest.raises(Conflict):
            votes.cast_vote(a.id, x.id)
        assert store.with_transaction(lambda tx: tx.get_candidate(x.id)).vote_count == 1

    def test_unknown_voter(self, store, votes, make_candidate):
        x = make_candidate()
        before = snapshot(store)

        with pytest.raises(NotFound) as exc:
            votes.cast_vote("no-such-voter", x.id)

        assert exc.value.entity == "voter"
        assert snapshot(store) == before

    def test_unknown_candidate_leaves_voter_untouched(self, store, votes, make_voter):
        a = make_voter()
        before = snapshot(store)

        with pytest.raises(NotFound) as exc:
            votes.cast_vote(a.id, "no-such-candidate")

        assert exc.value.entity == "candidate"
        assert snapshot(store) == before

    def test_voter_checks_come_before_candidate_check(self, votes, make_voter, make_candidate):
        a = make_voter()
        votes.cast_vote(a.id, make_candidate().id)

        # already voted wins over the unknown candidate
        with pytest.raises(Conflict):
            votes.cast_vote(a.id, "no-such-candidate")

    def test_failed_cast_changes_nothing(self, store, votes, make_voter, make_candidate):
        a = make_voter()
        b = make_voter()
        x = make_candidate()
        votes.cast_vote(a.id, x.id)
        before = snapshot(store)

        for voter_id, candidate_id in [(a.id, x.id), ("ghost", x.id), (b.id, "ghost")]:
            with pytest.raises((Conflict, NotFound)):
                votes.cast_vote(voter_id, candidate_id)
            assert snapshot(store) == before


class TestLedgerBackstop:
    def test_stale_has_voted_read_is_caught_by_unique_voter(self, store, votes, make_voter, make_candidate, monkeypatch):
        a = make_voter()
        x = make_candidate()
        y = make_candidate()
        votes.cast_vote(a.id, x.id)

        # pretend the has_voted read lost a race and saw the old value
        real_get_voter = InMemoryTransaction.get_voter

        def stale_get_voter(self, voter_id):
            voter = real_get_voter(self, voter_id)
            return voter.model_copy(update={"has_voted": False}) if voter else None

        monkeypatch.setattr(InMemoryTransaction, "get_voter", stale_get_voter)

        with pytest.raises(Conflict) as exc:
            votes.cast_vote(a.id, y.id)

        monkeypatch.undo()
        assert exc.value.reason == "already_voted"
        assert len(votes.list_votes()) == 1
        assert store.with_transaction(lambda tx: tx.get_candidate(y.id)).vote_count == 0
        assert_invariants(store)

    def test_mark_voted_miss_rolls_back_inserted_vote(self, store, votes, make_voter, make_candidate, monkeypatch):
        a = make_voter()
        x = make_candidate()
        monkeypatch.setattr(InMemoryTransaction, "mark_voted", lambda self, voter_id: False)
        before = snapshot(store)

        with pytest.raises(Conflict):
            votes.cast_vote(a.id, x.id)

        assert snapshot(store) == before

    def test_failure_after_writes_rolls_everything_back(self, store, votes, make_voter, make_candidate, monkeypatch):
        a = make_voter()
        x = make_candidate()
        before = snapshot(store)

        def boom(self, candidate_id):
            raise RuntimeError("connection dropped")

        monkeypatch.setattr(InMemoryTransaction, "increment_tally", boom)

        with pytest.raises(RuntimeError):
            votes.cast_vote(a.id, x.id)

        assert snapshot(store) == before
        monkeypatch.undo()
        # the voter can still vote once the fault is gone
        votes.cast_vote(a.id, x.id)
        assert_invariants(store)


class TestConcurrency:
    def test_fifty_concurrent_casts_for_one_voter(self, store, votes, make_voter, make_candidate):
        a = make_voter()
        x = make_candidate()
        barrier = threading.Barrier(50)

        def attempt(_):
            barrier.wait()
            return _cast_outcome(votes, a.id, x.id)

        with ThreadPoolExecutor(max_workers=50) as pool:
            outcomes = list(pool.map(attempt, range(50)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("already_voted") == 49
        assert store.with_transaction(lambda tx: tx.get_candidate(x.id)).vote_count == 1
        assert_invariants(store)

    def test_concurrent_casts_by_different_voters_all_count(self, store, votes, make_voter, make_candidate):
        voters = [make_voter() for _ in range(40)]
        x = make_candidate()

        with ThreadPoolExecutor(max_workers=20) as pool:
            outcomes = list(pool.map(lambda v: _cast_outcome(votes, v.id, x.id), voters))

        assert outcomes == ["ok"] * 40
        assert store.with_transaction(lambda tx: tx.get_candidate(x.id)).vote_count == 40
        assert_invariants(store)

    def test_mixed_race(self, store, votes, make_voter, make_candidate):
        voters = [make_voter() for _ in range(10)]
        candidates = [make_candidate() for _ in range(3)]
        attempts = [(v.id, c.id) for v in voters for c in candidates] * 2

        with ThreadPoolExecutor(max_workers=16) as pool:
            outcomes = list(pool.map(lambda a: _cast_outcome(votes, *a), attempts))

        assert outcomes.count("ok") == len(voters)
        assert_invariants(store)

    def test_lock_timeout_aborts_without_effects(self):
        store = InMemoryStorage(timeout_ms=50)
        service = VoteService(store)
        voter_id = store.with_transaction(lambda tx: tx.insert_voter(Voter(name="Slow Voter", email="slow@example.com"))).id
        candidate_id = store.with_transaction(lambda tx: tx.insert_candidate(Candidate(name="Slow Candidate"))).id
        before = snapshot(store)

        held = threading.Event()
        release = threading.Event()

        def hold_lock(tx):
            held.set()
            release.wait(5)

        holder = threading.Thread(target=store.with_transaction, args=(hold_lock,))
        holder.start()
        held.wait(5)
        try:
            with pytest.raises(TransactionAborted) as exc:
                service.cast_vote(voter_id, candidate_id)
            assert exc.value.retryable is True
        finally:
            release.set()
            holder.join()

        assert snapshot(store) == before
        # retrying with the same input succeeds once the lock is free
        service.cast_vote(voter_id, candidate_id)
        assert_invariants(store)


class TestLedgerReads:
    def test_get_vote_and_by_voter(self, votes, make_voter, make_candidate):
        a = make_voter()
        b = make_voter()
        vote = votes.cast_vote(a.id, make_candidate().id)

        assert votes.get_vote(vote.id).model_dump() == vote.model_dump()
        assert votes.get_vote_by_voter(a.id).model_dump() == vote.model_dump()
        assert votes.get_vote_by_voter(b.id) is None
        assert votes.has_voter_voted(a.id) is True
        assert votes.has_voter_voted(b.id) is False

    def test_get_unknown_vote(self, votes):
        with pytest.raises(NotFound) as exc:
            votes.get_vote("missing")
        assert exc.value.entity == "vote"

    def test_list_votes_newest_first(self, votes, make_voter, make_candidate):
        x = make_candidate()
        cast = [votes.cast_vote(make_voter().id, x.id) for _ in range(3)]

        listed = votes.list_votes()

        assert [v.voted_at for v in listed] == sorted((v.voted_at for v in cast), reverse=True)
        assert {v.id for v in listed} == {v.id for v in cast}


"""
Shared fixtures for ballotbox tests.

- Unit tests run against the in-process store (serializable, no server needed).
- MongoDB tests need BALLOTBOX_TEST_MONGO_URI pointing at a replica set.
"""

import pytest
from fastapi.testclient import TestClient

from ballotbox import crud
from ballotbox.main import create_app
from ballotbox.models.candidate_model import CandidateCreate
from ballotbox.models.voter_model import VoterCreate
from ballotbox.storage import InMemoryStorage
from ballotbox.tally import TallyService
from ballotbox.voting import VoteService


@pytest.fixture
def store() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def votes(store) -> VoteService:
    return VoteService(store)


@pytest.fixture
def tally(store) -> TallyService:
    return TallyService(store)


@pytest.fixture
def make_voter(store):
    """Register a voter; returns the Voter record."""
    counter = iter(range(1, 10_000))

    def _make(name: str = None):
        n = next(counter)
        return crud.create_voter(store, VoterCreate(name=name or f"Voter {n}", email=f"voter{n}@example.com"))

    return _make


@pytest.fixture
def make_candidate(store):
    counter = iter(range(1, 10_000))

    def _make(name: str = None, party: str = None):
        n = next(counter)
        return crud.create_candidate(store, CandidateCreate(name=name or f"Candidate {n}", party=party))

    return _make


@pytest.fixture
def client(store) -> TestClient:
    return TestClient(create_app(store))

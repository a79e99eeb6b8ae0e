# ballotbox/storage.py
# In-process persistence substrate, optionally backed by a JSON file.
# Both substrates expose the same shape: with_transaction(fn) runs fn(tx)
# atomically, tx being the unit of work the services talk to.
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ballotbox.config import DATA_PATH, MONGO_DB, MONGO_URI, STORAGE_BACKEND, TRANSACTION_TIMEOUT_MS
from ballotbox.errors import Conflict, DuplicateVoteError, StorageUnavailable, TransactionAborted
from ballotbox.models.candidate_model import Candidate
from ballotbox.models.vote_model import Vote
from ballotbox.models.voter_model import Voter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _empty_db() -> Dict[str, Dict[str, Any]]:
    return {"voters": {}, "candidates": {}, "votes": {}}


class InMemoryTransaction:
    """
    Unit of work over an InMemoryStorage.
    Every write pushes an undo step; rollback() replays them in reverse.
    """

    def __init__(self, storage: "InMemoryStorage"):
        self._db = storage._db
        self._votes_by_voter = storage._votes_by_voter
        self._undo: List[Callable[[], None]] = []

    @property
    def dirty(self) -> bool:
        return bool(self._undo)

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()

    def _put(self, table: str, doc: Dict[str, Any]) -> None:
        rows = self._db[table]
        previous = rows.get(doc["id"])
        rows[doc["id"]] = doc
        if previous is None:
            self._undo.append(lambda: rows.pop(doc["id"], None))
        else:
            self._undo.append(lambda: rows.__setitem__(doc["id"], previous))

    def _remove(self, table: str, doc_id: str) -> None:
        rows = self._db[table]
        previous = rows.pop(doc_id)
        self._undo.append(lambda: rows.__setitem__(doc_id, previous))

    # --- Registry reads ---
    def get_voter(self, voter_id: str) -> Optional[Voter]:
        doc = self._db["voters"].get(voter_id)
        return Voter(**doc) if doc else None

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        doc = self._db["candidates"].get(candidate_id)
        return Candidate(**doc) if doc else None

    def find_voter_by_email(self, email: str) -> Optional[Voter]:
        email = email.lower()
        for doc in self._db["voters"].values():
            if doc["email"] == email:
                return Voter(**doc)
        return None

    def find_voter_by_name(self, name: str) -> Optional[Voter]:
        name = name.lower()
        for doc in self._db["voters"].values():
            if doc["name"].lower() == name:
                return Voter(**doc)
        return None

    def find_candidate_by_name(self, name: str) -> Optional[Candidate]:
        name = name.lower()
        for doc in self._db["candidates"].values():
            if doc["name"].lower() == name:
                return Candidate(**doc)
        return None

    def list_voters(self) -> List[Voter]:
        return [Voter(**doc) for doc in sorted(self._db["voters"].values(), key=lambda d: d["id"])]

    def list_candidates(self) -> List[Candidate]:
        return [Candidate(**doc) for doc in sorted(self._db["candidates"].values(), key=lambda d: d["id"])]

    # --- Ledger reads ---
    def list_votes(self) -> List[Vote]:
        votes = [Vote(**doc) for doc in self._db["votes"].values()]
        votes.sort(key=lambda v: v.id)
        votes.sort(key=lambda v: v.voted_at, reverse=True)
        return votes

    def get_vote(self, vote_id: str) -> Optional[Vote]:
        doc = self._db["votes"].get(vote_id)
        return Vote(**doc) if doc else None

    def get_vote_by_voter(self, voter_id: str) -> Optional[Vote]:
        vote_id = self._votes_by_voter.get(voter_id)
        return self.get_vote(vote_id) if vote_id else None

    # --- Casting writes ---
    def insert_vote(self, voter_id: str, candidate_id: str) -> Vote:
        if voter_id in self._votes_by_voter:
            raise DuplicateVoteError(voter_id)
        vote = Vote(voter_id=voter_id, candidate_id=candidate_id)
        self._put("votes", vote.model_dump(mode="json"))
        self._votes_by_voter[voter_id] = vote.id
        self._undo.append(lambda: self._votes_by_voter.pop(voter_id, None))
        return vote

    def mark_voted(self, voter_id: str) -> bool:
        doc = self._db["voters"].get(voter_id)
        if doc is None or doc["has_voted"]:
            return False
        self._put("voters", {**doc, "has_voted": True})
        return True

    def increment_tally(self, candidate_id: str) -> bool:
        doc = self._db["candidates"].get(candidate_id)
        if doc is None:
            return False
        self._put("candidates", {**doc, "vote_count": doc["vote_count"] + 1})
        return True

    # --- Registry writes ---
    def insert_voter(self, voter: Voter) -> Voter:
        if self.find_voter_by_email(voter.email):
            raise Conflict("email_exists")
        self._put("voters", voter.model_dump(mode="json"))
        return voter

    def insert_candidate(self, candidate: Candidate) -> Candidate:
        if self.find_candidate_by_name(candidate.name):
            raise Conflict("name_exists")
        self._put("candidates", candidate.model_dump(mode="json"))
        return candidate

    def update_voter_fields(self, voter_id: str, fields: Dict[str, Any]) -> Optional[Voter]:
        doc = self._db["voters"].get(voter_id)
        if doc is None:
            return None
        self._put("voters", {**doc, **fields})
        return self.get_voter(voter_id)

    def update_candidate_fields(self, candidate_id: str, fields: Dict[str, Any]) -> Optional[Candidate]:
        doc = self._db["candidates"].get(candidate_id)
        if doc is None:
            return None
        self._put("candidates", {**doc, **fields})
        return self.get_candidate(candidate_id)

    def delete_voter(self, voter_id: str) -> bool:
        doc = self._db["voters"].get(voter_id)
        if doc is None or doc["has_voted"]:
            return False
        self._remove("voters", voter_id)
        return True

    def delete_candidate(self, candidate_id: str) -> bool:
        doc = self._db["candidates"].get(candidate_id)
        if doc is None or doc["vote_count"] > 0:
            return False
        self._remove("candidates", candidate_id)
        return True


class InMemoryStorage:
    """
    Serializable in-process store: one re-entrant lock admits a single
    transaction at a time. With a path, the database is loaded from and
    written to a JSON file after every committed write.
    """

    def __init__(self, path: Optional[str] = None, timeout_ms: int = TRANSACTION_TIMEOUT_MS):
        self.path = path
        self._timeout = timeout_ms / 1000.0
        self._lock = threading.RLock()
        self._db = _empty_db()
        self._votes_by_voter: Dict[str, str] = {}
        if path:
            self._db = self._read_db()
            for vote in self._db["votes"].values():
                self._votes_by_voter[vote["voter_id"]] = vote["id"]
            logger.info(f"Loaded {len(self._db['votes'])} votes from {path}")

    def _read_db(self) -> Dict[str, Dict[str, Any]]:
        """
        Read the JSON database file.
        If the file is missing, empty or corrupted, start from an empty database.
        """
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return {table: data.get(table, {}) for table in ("voters", "candidates", "votes")}
        except (json.JSONDecodeError, FileNotFoundError):
            logger.warning(f"No usable database at {self.path}, starting empty")
            reset_data = _empty_db()
            self._write_db(reset_data)
            return reset_data

    def _write_db(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def with_transaction(self, fn: Callable[[InMemoryTransaction], T]) -> T:
        if not self._lock.acquire(timeout=self._timeout):
            logger.error("Timed out waiting for the storage lock")
            raise TransactionAborted()
        try:
            tx = InMemoryTransaction(self)
            try:
                result = fn(tx)
                if self.path and tx.dirty:
                    self._write_db(self._db)
            except OSError as e:
                tx.rollback()
                logger.error(f"Failed to persist database to {self.path}: {e}")
                raise StorageUnavailable(f"Could not write {self.path}") from e
            except BaseException:
                tx.rollback()
                raise
            return result
        finally:
            self._lock.release()

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        logger.info("In-memory storage closed")


def open_storage(backend: str = STORAGE_BACKEND):
    """Build the substrate named by configuration."""
    if backend == "memory":
        return InMemoryStorage(path=DATA_PATH)
    if backend == "mongo":
        from ballotbox.storage_mongo import MongoStorage

        return MongoStorage(MONGO_URI, MONGO_DB)
    raise ValueError(f"Unknown storage backend: {backend!r}")

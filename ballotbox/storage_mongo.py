# ballotbox/storage_mongo.py
# MongoDB persistence substrate. Needs a replica set (multi-document transactions).
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pymongo import ASCENDING, DESCENDING, ReadPreference, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from ballotbox.config import TRANSACTION_TIMEOUT_MS
from ballotbox.database.connection import (
    CANDIDATES_COLLECTION_NAME,
    VOTERS_COLLECTION_NAME,
    VOTES_COLLECTION_NAME,
    connect,
    ensure_indexes,
)
from ballotbox.errors import Conflict, DuplicateVoteError, StorageUnavailable, TransactionAborted
from ballotbox.models.candidate_model import Candidate
from ballotbox.models.vote_model import Vote
from ballotbox.models.voter_model import Voter

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")

RETRYABLE_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")


def _has_label(error: BaseException, label: str) -> bool:
    return isinstance(error, PyMongoError) and error.has_error_label(label)


def _to_doc(record) -> Dict[str, Any]:
    doc = record.model_dump()
    doc["_id"] = doc.pop("id")
    return doc


def _from_doc(model: Type[M], doc: Optional[Dict[str, Any]]) -> Optional[M]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = doc.pop("_id")
    return model(**doc)


class MongoTransaction:
    """Unit of work bound to one client session inside with_transaction."""

    def __init__(self, db: Database, session: ClientSession):
        self.session = session
        self.voters = db[VOTERS_COLLECTION_NAME]
        self.candidates = db[CANDIDATES_COLLECTION_NAME]
        self.votes = db[VOTES_COLLECTION_NAME]

    # --- Registry reads ---
    def get_voter(self, voter_id: str) -> Optional[Voter]:
        return _from_doc(Voter, self.voters.find_one({"_id": voter_id}, session=self.session))

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        return _from_doc(Candidate, self.candidates.find_one({"_id": candidate_id}, session=self.session))

    def find_voter_by_email(self, email: str) -> Optional[Voter]:
        return _from_doc(Voter, self.voters.find_one({"email": email.lower()}, session=self.session))

    def find_voter_by_name(self, name: str) -> Optional[Voter]:
        query = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
        return _from_doc(Voter, self.voters.find_one(query, session=self.session))

    def find_candidate_by_name(self, name: str) -> Optional[Candidate]:
        return _from_doc(Candidate, self.candidates.find_one({"name_lower": name.lower()}, session=self.session))

    def list_voters(self) -> List[Voter]:
        cursor = self.voters.find({}, session=self.session).sort("_id", ASCENDING)
        return [_from_doc(Voter, doc) for doc in cursor]

    def list_candidates(self) -> List[Candidate]:
        cursor = self.candidates.find({}, session=self.session).sort("_id", ASCENDING)
        return [_from_doc(Candidate, doc) for doc in cursor]

    # --- Ledger reads ---
    def list_votes(self) -> List[Vote]:
        cursor = self.votes.find({}, session=self.session).sort([("voted_at", DESCENDING), ("_id", ASCENDING)])
        return [_from_doc(Vote, doc) for doc in cursor]

    def get_vote(self, vote_id: str) -> Optional[Vote]:
        return _from_doc(Vote, self.votes.find_one({"_id": vote_id}, session=self.session))

    def get_vote_by_voter(self, voter_id: str) -> Optional[Vote]:
        return _from_doc(Vote, self.votes.find_one({"voter_id": voter_id}, session=self.session))

    # --- Casting writes ---
    def insert_vote(self, voter_id: str, candidate_id: str) -> Vote:
        vote = Vote(voter_id=voter_id, candidate_id=candidate_id)
        try:
            self.votes.insert_one(_to_doc(vote), session=self.session)
        except DuplicateKeyError as e:
            raise DuplicateVoteError(voter_id) from e
        return vote

    def mark_voted(self, voter_id: str) -> bool:
        result = self.voters.update_one(
            {"_id": voter_id, "has_voted": False},
            {"$set": {"has_voted": True}},
            session=self.session,
        )
        return result.matched_count == 1

    def increment_tally(self, candidate_id: str) -> bool:
        result = self.candidates.update_one(
            {"_id": candidate_id},
            {"$inc": {"vote_count": 1}},
            session=self.session,
        )
        return result.matched_count == 1

    # --- Registry writes ---
    def insert_voter(self, voter: Voter) -> Voter:
        try:
            self.voters.insert_one(_to_doc(voter), session=self.session)
        except DuplicateKeyError as e:
            raise Conflict("email_exists") from e
        return voter

    def insert_candidate(self, candidate: Candidate) -> Candidate:
        doc = _to_doc(candidate)
        doc["name_lower"] = candidate.name.lower()
        try:
            self.candidates.insert_one(doc, session=self.session)
        except DuplicateKeyError as e:
            raise Conflict("name_exists") from e
        return candidate

    def update_voter_fields(self, voter_id: str, fields: Dict[str, Any]) -> Optional[Voter]:
        try:
            doc = self.voters.find_one_and_update(
                {"_id": voter_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
                session=self.session,
            )
        except DuplicateKeyError as e:
            raise Conflict("email_exists") from e
        return _from_doc(Voter, doc)

    def update_candidate_fields(self, candidate_id: str, fields: Dict[str, Any]) -> Optional[Candidate]:
        fields = dict(fields)
        if "name" in fields:
            fields["name_lower"] = fields["name"].lower()
        try:
            doc = self.candidates.find_one_and_update(
                {"_id": candidate_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
                session=self.session,
            )
        except DuplicateKeyError as e:
            raise Conflict("name_exists") from e
        return _from_doc(Candidate, doc)

    def delete_voter(self, voter_id: str) -> bool:
        result = self.voters.delete_one({"_id": voter_id, "has_voted": False}, session=self.session)
        return result.deleted_count == 1

    def delete_candidate(self, candidate_id: str) -> bool:
        result = self.candidates.delete_one({"_id": candidate_id, "vote_count": 0}, session=self.session)
        return result.deleted_count == 1


class MongoStorage:
    def __init__(self, mongo_uri: str, db_name: str, timeout_ms: int = TRANSACTION_TIMEOUT_MS, client=None):
        """Connect, create indexes and check the server answers."""
        self.timeout_ms = timeout_ms
        try:
            if client is None:
                self.client, self.db = connect(mongo_uri, db_name, serverSelectionTimeoutMS=timeout_ms)
            else:
                self.client, self.db = client, client[db_name]
            ensure_indexes(self.db)
            self.client.admin.command("ping")
            logger.info(f"Connected to MongoDB, database: {db_name}")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise StorageUnavailable("Could not connect to MongoDB") from e

    def with_transaction(self, fn: Callable[[MongoTransaction], T]) -> T:
        """
        Run fn inside a snapshot-isolated transaction.
        fn is re-run on transient write conflicts until timeout_ms has passed,
        so it must only touch the database through the transaction it is given.
        """
        deadline = time.monotonic() + self.timeout_ms / 1000.0
        try:
            with self.client.start_session() as session:
                return self._run(session, fn, deadline)
        except PyMongoError as e:
            raise self._translate(e) from e

    def _run(self, session: ClientSession, fn: Callable[[MongoTransaction], T], deadline: float) -> T:
        attempt = 0
        while True:
            attempt += 1
            session.start_transaction(
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
                read_preference=ReadPreference.PRIMARY,
                max_commit_time_ms=self.timeout_ms,
            )
            try:
                result = fn(MongoTransaction(self.db, session))
            except BaseException as e:
                if session.in_transaction:
                    session.abort_transaction()
                if _has_label(e, "TransientTransactionError") and time.monotonic() < deadline:
                    logger.warning(f"Transient transaction error on attempt {attempt}, retrying: {e}")
                    continue
                raise
            try:
                self._commit(session, deadline)
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError") and time.monotonic() < deadline:
                    logger.warning(f"Transient commit error on attempt {attempt}, retrying: {e}")
                    continue
                raise
            return result

    @staticmethod
    def _commit(session: ClientSession, deadline: float) -> None:
        while True:
            try:
                session.commit_transaction()
                return
            except PyMongoError as e:
                if (
                    e.has_error_label("UnknownTransactionCommitResult")
                    and not isinstance(e, ExecutionTimeout)
                    and time.monotonic() < deadline
                ):
                    continue
                raise

    @staticmethod
    def _translate(error: PyMongoError) -> Exception:
        if any(error.has_error_label(label) for label in RETRYABLE_LABELS) or isinstance(error, ExecutionTimeout):
            logger.error(f"Transaction aborted: {error}")
            return TransactionAborted()
        if isinstance(error, (ServerSelectionTimeoutError, ConnectionFailure)):
            logger.error(f"MongoDB unreachable: {error}")
            return StorageUnavailable()
        logger.error(f"MongoDB error: {error}")
        return StorageUnavailable(f"Storage error: {error}")

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")

import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

VOTERS_COLLECTION_NAME = "voters"
CANDIDATES_COLLECTION_NAME = "candidates"
VOTES_COLLECTION_NAME = "votes"


def connect(mongo_uri: str, db_name: str, **client_kwargs) -> tuple:
    """Open a client and return (client, database). Fails fast on missing settings."""
    if not mongo_uri:
        raise ValueError("MONGO_URI not set. Check your .env file.")
    if not db_name:
        raise ValueError("MONGO_DB not set. Check your .env file.")

    client = MongoClient(mongo_uri, tz_aware=True, **client_kwargs)
    return client, client[db_name]


def ensure_indexes(db: Database) -> None:
    """
    Create the indexes the core relies on.
    votes.voter_id being unique is what enforces one vote per voter.
    """
    db[VOTES_COLLECTION_NAME].create_index([("voter_id", ASCENDING)], unique=True, name="voter_id_unique")
    db[VOTES_COLLECTION_NAME].create_index([("candidate_id", ASCENDING)], name="candidate_id")
    db[VOTES_COLLECTION_NAME].create_index([("voted_at", DESCENDING)], name="voted_at_desc")
    db[VOTERS_COLLECTION_NAME].create_index([("email", ASCENDING)], unique=True, name="email_unique")
    db[VOTERS_COLLECTION_NAME].create_index([("has_voted", ASCENDING)], name="has_voted")
    db[CANDIDATES_COLLECTION_NAME].create_index([("name_lower", ASCENDING)], unique=True, name="name_unique")
    logger.info(f"Indexes ensured on database {db.name}")

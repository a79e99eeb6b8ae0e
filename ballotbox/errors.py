# ballotbox/errors.py
# Error vocabulary shared by the core, the storage backends and the HTTP layer


class BallotError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "statusCode": self.status_code,
        }


class NotFound(BallotError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str = None):
        self.entity = entity
        self.entity_id = entity_id
        self.code = f"{entity}_not_found"
        message = f"{entity.capitalize()} not found"
        if entity_id is not None:
            message = f"{message}: {entity_id}"
        super().__init__(message)


CONFLICT_MESSAGES = {
    "already_voted": "Voter has already voted",
    "email_exists": "A voter with this email already exists",
    "name_exists": "A candidate with this name already exists",
    "voter_has_voted": "Cannot delete a voter who has already voted",
    "candidate_has_votes": "Cannot delete a candidate who has votes",
    "voter_is_candidate": "This email is registered as a candidate",
    "candidate_is_voter": "This name is registered as a voter",
}


class Conflict(BallotError):
    """State is known and a retry with the same input fails the same way."""

    status_code = 409

    def __init__(self, reason: str, message: str = None):
        self.reason = reason
        self.code = reason
        super().__init__(message or CONFLICT_MESSAGES.get(reason, reason))


class TransactionAborted(BallotError):
    """State is unknown; safe to retry with the same input."""

    status_code = 503
    code = "transaction_aborted"
    retryable = True

    def __init__(self, message: str = "Transaction aborted, retry the request"):
        super().__init__(message)


class StorageUnavailable(BallotError):
    status_code = 503
    code = "storage_unavailable"

    def __init__(self, message: str = "Storage is unavailable"):
        super().__init__(message)


class DuplicateVoteError(Exception):
    """Raised by a ledger when a second vote for the same voter is inserted."""

    def __init__(self, voter_id: str):
        super().__init__(f"Duplicate vote for voter {voter_id}")
        self.voter_id = voter_id

"""HTTP tests: routes, status codes and the error body."""

from concurrent.futures import ThreadPoolExecutor

from fastapi.testclient import TestClient

from ballotbox.errors import StorageUnavailable, TransactionAborted
from ballotbox.main import create_app


def _register(client, name="Ada Lovelace", email="ada@example.com"):
    response = client.post("/voters", json={"name": name, "email": email})
    assert response.status_code == 201
    return response.json()


def _candidate(client, name="Grace Hopper", party=None):
    response = client.post("/candidates", json={"name": name, "party": party})
    assert response.status_code == 201
    return response.json()


def test_cast_vote_scenario(client):
    a = _register(client)
    x = _candidate(client, "Ximena Ortiz")
    y = _candidate(client, "Yusuf Adeyemi")

    first = client.post("/votes", json={"voter_id": a["id"], "candidate_id": x["id"]})
    second = client.post("/votes", json={"voter_id": a["id"], "candidate_id": y["id"]})

    assert first.status_code == 201
    assert first.json()["voter_id"] == a["id"]
    assert first.json()["candidate_id"] == x["id"]
    assert second.status_code == 409
    assert second.json() == {
        "success": False,
        "error": "Voter has already voted",
        "code": "already_voted",
        "statusCode": 409,
    }
    assert client.get(f"/candidates/{x['id']}").json()["vote_count"] == 1
    assert client.get(f"/candidates/{y['id']}").json()["vote_count"] == 0
    assert client.get(f"/voters/{a['id']}").json()["has_voted"] is True


def test_cast_vote_unknown_voter(client):
    x = _candidate(client)

    response = client.post("/votes", json={"voter_id": "ghost", "candidate_id": x["id"]})

    assert response.status_code == 404
    assert response.json()["code"] == "voter_not_found"
    assert client.get(f"/candidates/{x['id']}").json()["vote_count"] == 0


def test_cast_vote_unknown_candidate(client):
    a = _register(client)

    response = client.post("/votes", json={"voter_id": a["id"], "candidate_id": "ghost"})

    assert response.status_code == 404
    assert response.json()["code"] == "candidate_not_found"


def test_cast_vote_validation(client):
    response = client.post("/votes", json={"voter_id": ""})
    assert response.status_code == 422


def test_concurrent_requests_for_one_voter(client):
    a = _register(client)
    x = _candidate(client)
    body = {"voter_id": a["id"], "candidate_id": x["id"]}

    with ThreadPoolExecutor(max_workers=10) as pool:
        codes = list(pool.map(lambda _: client.post("/votes", json=body).status_code, range(20)))

    assert codes.count(201) == 1
    assert codes.count(409) == 19
    assert client.get(f"/candidates/{x['id']}").json()["vote_count"] == 1


def test_vote_reads(client):
    a = _register(client)
    b = _register(client, "Bob Builder", "bob@example.com")
    x = _candidate(client)
    vote = client.post("/votes", json={"voter_id": a["id"], "candidate_id": x["id"]}).json()

    listed = client.get("/votes").json()
    assert listed["total"] == 1
    assert listed["votes"][0]["id"] == vote["id"]

    assert client.get(f"/votes/{vote['id']}").json()["voter_id"] == a["id"]
    assert client.get("/votes/missing").status_code == 404

    voted = client.get(f"/votes/voter/{a['id']}").json()
    assert voted["has_voted"] is True
    assert voted["vote"]["id"] == vote["id"]
    not_voted = client.get(f"/votes/voter/{b['id']}").json()
    assert not_voted == {"voter_id": b["id"], "has_voted": False, "vote": None}


def test_statistics_endpoints(client):
    a = _register(client)
    _register(client, "Bob Builder", "bob@example.com")
    x = _candidate(client, "Ximena Ortiz", party="Green")
    _candidate(client, "Yusuf Adeyemi")
    client.post("/votes", json={"voter_id": a["id"], "candidate_id": x["id"]})

    stats = client.get("/votes/statistics").json()
    assert stats["total_votes"] == 1
    assert stats["total_voters"] == 2
    assert stats["voters_who_voted"] == 1
    assert stats["participation_rate"] == "50.00"
    assert stats["per_candidate"][0]["candidate_id"] == x["id"]
    assert stats["per_candidate"][0]["percentage"] == "100.00"
    assert stats["per_candidate"][1]["percentage"] == "0.00"

    ranking = client.get("/votes/ranking", params={"limit": 1}).json()
    assert [c["candidate_id"] for c in ranking] == [x["id"]]

    assert client.get("/votes/audit").json()["consistent"] is True
    assert client.get("/voters/stats").json() == {
        "total": 2,
        "voted": 1,
        "pending": 1,
        "participation_rate": "50.00",
    }
    assert client.get("/candidates/stats").json()["average_votes"] == "0.50"


class _FailingStore:
    def __init__(self, error):
        self.error = error

    def with_transaction(self, fn):
        raise self.error

    def ping(self):
        return False


def test_transaction_aborted_is_retryable():
    client = TestClient(create_app(_FailingStore(TransactionAborted())))

    response = client.post("/votes", json={"voter_id": "a", "candidate_id": "x"})

    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"
    assert response.json()["code"] == "transaction_aborted"


def test_storage_unavailable():
    client = TestClient(create_app(_FailingStore(StorageUnavailable())))

    response = client.get("/votes/statistics")

    assert response.status_code == 503
    assert "retry-after" not in response.headers
    assert response.json()["code"] == "storage_unavailable"
    assert client.get("/health").status_code == 503


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "healthy", "storage": "InMemoryStorage"}
    assert "ballotbox" in client.get("/").json()["message"]

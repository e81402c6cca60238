import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from database import get_db
from main import app
from core.chest_allocator import ChestNumberAllocator, CounterConflict


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def cse(client):
    response = client.post("/api/departments", json={"name": "Computer Science", "code": "cse"})
    assert response.status_code == 201
    return response.json()


def _register(client, department_id, code, gender="male"):
    response = client.post("/api/participants", json={
        "name": f"Athlete {code}",
        "registration_code": code,
        "department_id": department_id,
        "gender": gender,
    })
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_duplicate_registration_returns_existing_identity(client, cse):
    first = _register(client, cse["id"], "21CS001")

    response = client.post("/api/participants", json={
        "name": "Someone Else",
        "registration_code": "21cs001",
        "department_id": cse["id"],
        "gender": "male",
    })

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["participant_id"] == first["id"]
    assert detail["chest_number"] == first["chest_number"]


def test_chest_number_lookup(client, cse):
    runner = _register(client, cse["id"], "21CS001")

    response = client.get(f"/api/participants/chest/{runner['chest_number']}")
    assert response.json()["id"] == runner["id"]
    assert client.get("/api/participants/chest/9999").status_code == 404


def test_unknown_event_is_404(client):
    assert client.get("/api/events/missing").status_code == 404
    assert client.post("/api/events/missing/advance", json={}).status_code == 404


def test_sprint_event_over_http(client, cse):
    runners = [_register(client, cse["id"], f"21CS{i:03d}") for i in range(1, 5)]
    ids = [r["id"] for r in runners]

    event = client.post("/api/events", json={
        "name": "100m", "discipline": "individual", "gender_category": "male",
    }).json()
    assert event["points_first"] == 5
    assert [r["name"] for r in event["rounds"]] == ["Round 1"]

    roster = client.put(f"/api/events/{event['id']}/roster", json={"entry_ids": ids})
    assert roster.json()["admission_ids"] == ids

    base = f"/api/events/{event['id']}/rounds"
    assert client.post(f"{base}/0/heats", json={"heat_number": 1, "entry_ids": ids}).status_code == 201

    # Ranks only exist in the Final
    rank = client.post(f"{base}/0/heats/1/rank", json={"entry_id": ids[0], "rank": 1})
    assert rank.status_code == 409

    for entry_id in ids[:2]:
        client.post(f"{base}/0/heats/1/qualify", json={"entry_id": entry_id})
    final = client.post(f"/api/events/{event['id']}/advance", json={"is_final": True})
    assert final.status_code == 200
    assert final.json()["name"] == "Final"

    assert client.post(f"{base}/1/heats", json={"heat_number": 1, "entry_ids": ids[2:]}).status_code == 422

    closed = client.post(f"/api/events/{event['id']}/close", json={
        "pending_heat_number": 1,
        "pending_entries": [
            {"entry_id": ids[1], "rank": 1},
            {"entry_id": ids[0], "rank": 2},
        ],
    })
    assert closed.status_code == 200
    assert closed.json()["status"] == "completed"
    assert closed.json()["winner_ids"] == [ids[1], ids[0]]

    standings = client.get("/api/standings").json()
    # Scoreless runners still fill the top ten, after the medallists
    assert [s["id"] for s in standings["top_male"]][:2] == [ids[1], ids[0]]
    assert len(standings["top_male"]) == 4
    assert standings["departments"][0]["points"] == 8

    podium = client.get(f"/api/events/{event['id']}/podium").json()
    assert [p["rank"] for p in podium] == [1, 2]


def _event(client, name, gender_category="male", discipline="individual"):
    response = client.post("/api/events", json={
        "name": name, "discipline": discipline, "gender_category": gender_category,
    })
    assert response.status_code == 201, response.text
    return response.json()


def test_allocator_contention_is_503(client, cse, monkeypatch):
    def always_losing(self, db, expected, candidate):
        raise CounterConflict("lost the race")

    monkeypatch.setattr(ChestNumberAllocator, "_advance", always_losing)

    response = client.post("/api/participants", json={
        "name": "Asha", "registration_code": "21CS001",
        "department_id": cse["id"], "gender": "female",
    })

    assert response.status_code == 503
    assert client.get("/api/participants").json() == []


def test_storage_failure_is_500(client, cse, monkeypatch):
    def broken(self, db):
        raise OperationalError("UPDATE chest_counters", {}, Exception("database is locked"))

    monkeypatch.setattr(ChestNumberAllocator, "allocate", broken)

    response = client.post("/api/participants", json={
        "name": "Asha", "registration_code": "21CS001",
        "department_id": cse["id"], "gender": "female",
    })

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal error"


def test_final_close_ignores_stray_qualified_flag(client, cse):
    ids = [_register(client, cse["id"], f"21CS{i:03d}")["id"] for i in range(1, 3)]
    event = _event(client, "400m")
    client.put(f"/api/events/{event['id']}/roster", json={"entry_ids": ids})
    assert client.patch(
        f"/api/events/{event['id']}/rounds/current", json={"is_final": True}
    ).status_code == 200

    closed = client.post(f"/api/events/{event['id']}/close", json={
        "pending_heat_number": 1,
        "pending_entries": [
            {"entry_id": ids[0], "rank": 1, "score": 52.3},
            {"entry_id": ids[1], "qualified": True, "score": "55.10"},
        ],
    })

    assert closed.status_code == 200, closed.text
    assert closed.json()["status"] == "completed"
    roster = {
        item["entry_id"]: item
        for item in client.get(f"/api/events/{event['id']}/rounds/0/roster").json()
    }
    assert (roster[ids[0]]["rank"], roster[ids[0]]["score"]) == (1, "52.3")
    assert (roster[ids[1]]["rank"], roster[ids[1]]["qualified"]) == (None, False)
    assert roster[ids[1]]["score"] == "55.10"


def test_scores_over_http(client, cse):
    runner = _register(client, cse["id"], "21CS001")
    event = _event(client, "Shot Put")
    client.put(f"/api/events/{event['id']}/roster", json={"entry_ids": [runner["id"]]})
    base = f"/api/events/{event['id']}/rounds/0/heats"

    opened = client.post(base, json={"heat_number": 1, "entry_ids": [runner["id"]]})
    assert opened.json()[0]["score"] is None

    scored = client.post(f"{base}/1/score", json={"entry_id": runner["id"], "score": "11.4m"})
    assert scored.status_code == 200
    assert scored.json()["score"] == "11.4m"
    assert scored.json()["qualified"] is False

    saved = client.put(f"{base}/1", json={
        "entries": [{"entry_id": runner["id"], "qualified": True, "score": 11.62}],
    })
    assert saved.json()[0]["score"] == "11.62"

    missing = client.post(f"{base}/2/score", json={"entry_id": runner["id"], "score": "1"})
    assert missing.status_code == 422


def test_gender_change_on_roster_is_409(client, cse):
    runner = _register(client, cse["id"], "21CS001", gender="female")
    event = _event(client, "100m Women", gender_category="female")
    client.post(f"/api/events/{event['id']}/roster/{runner['id']}")

    response = client.patch(f"/api/participants/{runner['id']}", json={"gender": "male"})

    assert response.status_code == 409
    opened = client.post(f"/api/events/{event['id']}/rounds/0/heats", json={
        "heat_number": 1, "entry_ids": [runner["id"]],
    })
    assert opened.status_code == 201


def test_join_request_flow(client, cse):
    runner = _register(client, cse["id"], "21CS001")
    event = _event(client, "Javelin")

    submitted = client.post("/api/requests", json={
        "event_id": event["id"], "participant_id": runner["id"],
    })
    assert submitted.status_code == 201
    request = submitted.json()
    assert request["status"] == "pending"
    assert request["resolved_at"] is None

    again = client.post("/api/requests", json={
        "event_id": event["id"], "participant_id": runner["id"],
    })
    assert again.status_code == 400

    pending = client.get("/api/requests", params={"status": "pending"}).json()
    assert [r["id"] for r in pending] == [request["id"]]

    approved = client.post(f"/api/requests/{request['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert client.get(f"/api/events/{event['id']}").json()["admission_ids"] == [runner["id"]]

    assert client.post(f"/api/requests/{request['id']}/reject").status_code == 409
    assert client.post("/api/requests/missing/approve").status_code == 404


def test_join_request_checks_gender(client, cse):
    runner = _register(client, cse["id"], "21CS001", gender="female")
    event = _event(client, "Discus")

    response = client.post("/api/requests", json={
        "event_id": event["id"], "participant_id": runner["id"],
    })

    assert response.status_code == 422
    assert client.get("/api/requests").json() == []


def test_participant_record_over_http(client, cse):
    runner = _register(client, cse["id"], "21CS001")
    gold = _event(client, "Long Jump")
    ongoing = _event(client, "Triple Jump")
    for event in (gold, ongoing):
        client.post(f"/api/events/{event['id']}/roster/{runner['id']}")
    client.patch(f"/api/events/{gold['id']}/rounds/current", json={"is_final": True})
    client.post(f"/api/events/{gold['id']}/close", json={
        "pending_heat_number": 1,
        "pending_entries": [{"entry_id": runner["id"], "rank": 1}],
    })

    response = client.get("/api/participants/21cs001/record")

    assert response.status_code == 200
    record = response.json()
    assert record["participant"]["chest_number"] == runner["chest_number"]
    assert record["department"]["code"] == "CSE"
    assert [(e["event_name"], e["status"], e["rank"]) for e in record["events"]] == [
        ("Long Jump", "completed", 1),
        ("Triple Jump", "upcoming", None),
    ]
    assert client.get("/api/participants/00XX000/record").status_code == 404

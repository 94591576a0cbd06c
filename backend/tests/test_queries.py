from __future__ import annotations

import uuid

from conftest import auth, register_and_login


def _setup(client):
    teacher_id, teacher_token = register_and_login(client)
    student_id, student_token = register_and_login(client, role="student", name="Sam", email="sam@example.com")
    r = client.put("/api/teachers/status", json={"isAvailable": True}, headers=auth(teacher_token))
    assert r.status_code == 200, r.text
    return teacher_id, teacher_token, student_id, student_token


def _ask(client, teacher_id, student_token, text="When is the lab due?"):
    return client.post(
        "/api/queries",
        json={"teacherId": teacher_id, "queryText": text},
        headers=auth(student_token),
    )


def test_query_lifecycle(client, clock):
    teacher_id, teacher_token, student_id, student_token = _setup(client)

    r = _ask(client, teacher_id, student_token)
    assert r.status_code == 201, r.text
    query = r.json()
    assert query["status"] == "pending"
    assert query["student_id"] == student_id
    assert query["teacher_id"] == teacher_id
    assert query["resolution"] is None

    clock.advance(60)
    r = client.put(f"/api/queries/{query['id']}/end", headers=auth(teacher_token))
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "ended"
    assert r.json()["ended_at"] is not None

    r = client.put(
        f"/api/queries/{query['id']}/resolve",
        json={"resolution": "satisfied"},
        headers=auth(student_token),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "resolved"
    assert r.json()["resolution"] == "satisfied"


def test_listing_is_scoped_to_caller(client):
    teacher_id, teacher_token, _, student_token = _setup(client)
    _, other_student = register_and_login(client, role="student", name="Kim", email="kim@example.com")
    _ask(client, teacher_id, student_token, "first")
    _ask(client, teacher_id, other_student, "second")

    mine = client.get("/api/queries/mine", headers=auth(student_token)).json()
    assert [q["query_text"] for q in mine] == ["first"]

    inbox = client.get("/api/queries/mine", headers=auth(teacher_token)).json()
    assert sorted(q["query_text"] for q in inbox) == ["first", "second"]


def test_cannot_ask_an_unavailable_teacher(client):
    teacher_id, teacher_token, _, student_token = _setup(client)
    client.put("/api/teachers/status", json={"isAvailable": False}, headers=auth(teacher_token))

    r = _ask(client, teacher_id, student_token)
    assert r.status_code == 409
    assert r.json()["code"] == "TEACHER_UNAVAILABLE"


def test_unknown_teacher_and_blank_text(client):
    teacher_id, _, _, student_token = _setup(client)

    r = _ask(client, str(uuid.uuid4()), student_token)
    assert r.status_code == 404
    assert r.json()["code"] == "TEACHER_NOT_FOUND"

    r = _ask(client, teacher_id, student_token, "   ")
    assert r.status_code == 422
    assert r.json()["code"] == "EMPTY_QUERY"


def test_resolve_requires_ended_query(client):
    teacher_id, _, _, student_token = _setup(client)
    query = _ask(client, teacher_id, student_token).json()

    r = client.put(
        f"/api/queries/{query['id']}/resolve",
        json={"resolution": "not_satisfied"},
        headers=auth(student_token),
    )
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_QUERY_TRANSITION"


def test_only_addressed_teacher_can_end(client):
    teacher_id, teacher_token, _, student_token = _setup(client)
    _, bob_token = register_and_login(client, name="Bob", email="bob@example.com")
    query = _ask(client, teacher_id, student_token).json()

    r = client.put(f"/api/queries/{query['id']}/end", headers=auth(bob_token))
    assert r.status_code == 403

    r = client.put(f"/api/queries/{query['id']}/end", headers=auth(teacher_token))
    assert r.status_code == 200
    r = client.put(f"/api/queries/{query['id']}/end", headers=auth(teacher_token))
    assert r.status_code == 409


def test_roles_are_enforced(client):
    teacher_id, teacher_token, _, student_token = _setup(client)

    r = client.post(
        "/api/queries",
        json={"teacherId": teacher_id, "queryText": "hi"},
        headers=auth(teacher_token),
    )
    assert r.status_code == 403

    r = client.put(f"/api/queries/{uuid.uuid4()}/end", headers=auth(student_token))
    assert r.status_code == 403

    r = client.put(f"/api/queries/{uuid.uuid4()}/end", headers=auth(teacher_token))
    assert r.status_code == 404
    assert r.json()["code"] == "QUERY_NOT_FOUND"


def test_resolution_value_is_validated(client):
    teacher_id, teacher_token, _, student_token = _setup(client)
    query = _ask(client, teacher_id, student_token).json()
    client.put(f"/api/queries/{query['id']}/end", headers=auth(teacher_token))

    r = client.put(
        f"/api/queries/{query['id']}/resolve",
        json={"resolution": "meh"},
        headers=auth(student_token),
    )
    assert r.status_code == 422

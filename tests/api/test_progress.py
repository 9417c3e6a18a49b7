"""Tests for lesson start/complete endpoints."""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from tests.conftest import auth, mint_token

# ---- 401: unauthenticated ----


def test_start_lesson_rejects_missing_token(client: TestClient, enrolled) -> None:
    course, enrollment = enrolled
    resp = client.post(f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[0].id}/start")
    assert resp.status_code == 401


# ---- 200: start / complete ----


def test_start_lesson(client: TestClient, learner_token: str, enrolled) -> None:
    course, enrollment = enrolled
    lesson_id = course.lessons[0].id
    resp = client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{lesson_id}/start",
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "in_progress"
    assert body["lesson_id"] == str(lesson_id)
    assert body["enrollment_id"] == str(enrollment.id)
    assert body["started_at"] is not None
    assert body["completed_at"] is None


def test_complete_lesson_updates_enrollment(
    client: TestClient, learner_token: str, enrolled
) -> None:
    course, enrollment = enrolled
    resp = client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[0].id}/complete",
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "completed"
    assert body["enrollment_status"] == "in_progress"
    assert body["enrollment_percentage"] == "25.00"


def test_completing_every_lesson_completes_enrollment(
    client: TestClient, learner_token: str, enrolled
) -> None:
    course, enrollment = enrolled
    for lesson in course.lessons:
        resp = client.post(
            f"/v1/enrollments/{enrollment.id}/lessons/{lesson.id}/complete",
            headers=auth(learner_token),
        )
        assert resp.status_code == 200
    assert resp.json()["enrollment_status"] == "completed"
    assert resp.json()["enrollment_percentage"] == "100.00"

    status = client.get(
        f"/v1/enrollments/{enrollment.id}/status", headers=auth(learner_token)
    ).json()
    assert status["status"] == "completed"
    assert status["completed_at"] is not None


def test_list_progress(client: TestClient, learner_token: str, enrolled) -> None:
    course, enrollment = enrolled
    headers = auth(learner_token)
    client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[0].id}/start",
        headers=headers,
    )
    client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[1].id}/complete",
        headers=headers,
    )
    resp = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=headers)
    assert resp.status_code == 200
    states = {row["lesson_id"]: row["state"] for row in resp.json()}
    assert states == {
        str(course.lessons[0].id): "in_progress",
        str(course.lessons[1].id): "completed",
    }


# ---- 403 / 404 ----


def test_other_learner_cannot_record_progress(client: TestClient, enrolled) -> None:
    course, enrollment = enrolled
    intruder = mint_token(username=str(uuid4()))
    resp = client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[0].id}/complete",
        headers=auth(intruder),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


def test_non_learner_subject_is_forbidden(client: TestClient, enrolled) -> None:
    course, enrollment = enrolled
    resp = client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{course.lessons[0].id}/start",
        headers=auth(mint_token(username="service-account")),
    )
    assert resp.status_code == 403


def test_unknown_lesson_is_404(client: TestClient, learner_token: str, enrolled) -> None:
    _, enrollment = enrolled
    resp = client.post(
        f"/v1/enrollments/{enrollment.id}/lessons/{uuid4()}/complete",
        headers=auth(learner_token),
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_unknown_enrollment_is_404(client: TestClient, learner_token: str, enrolled) -> None:
    course, _ = enrolled
    resp = client.post(
        f"/v1/enrollments/{uuid4()}/lessons/{course.lessons[0].id}/start",
        headers=auth(learner_token),
    )
    assert resp.status_code == 404


def test_malformed_ids_are_422(client: TestClient, learner_token: str) -> None:
    resp = client.post(
        "/v1/enrollments/not-a-uuid/lessons/also-not/start",
        headers=auth(learner_token),
    )
    assert resp.status_code == 422

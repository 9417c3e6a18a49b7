from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from lms.services import token_service
from tests.conftest import auth


def _signed(**overrides) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": "00000000-0000-0000-0000-00000000beef",
        "iss": token_service.ISSUER,
        "aud": token_service.AUDIENCE,
        "exp": now + timedelta(minutes=5),
        "iat": now,
        "jti": "test-jti",
        "roles": ["learner"],
    }
    payload.update(overrides)
    return jwt.encode(payload, token_service._private_key, algorithm=token_service.ALGORITHM)


# ---- invalid / missing token cases ----


def test_protected_endpoint_rejects_missing_token(client: TestClient) -> None:
    resp = client.get("/v1/enrollments")
    assert resp.status_code == 401


def test_protected_endpoint_rejects_garbage_token(client: TestClient) -> None:
    resp = client.get("/v1/enrollments", headers=auth("total-garbage"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_protected_endpoint_rejects_expired_token(client: TestClient) -> None:
    past = datetime.now(UTC) - timedelta(minutes=10)
    token = _signed(exp=past + timedelta(minutes=5), iat=past)
    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_protected_endpoint_rejects_wrong_audience(client: TestClient) -> None:
    resp = client.get("/v1/enrollments", headers=auth(_signed(aud="someone-else")))
    assert resp.status_code == 401


def test_protected_endpoint_rejects_foreign_signing_key(client: TestClient) -> None:
    now = datetime.now(UTC)
    forged = jwt.encode(
        {
            "sub": "00000000-0000-0000-0000-00000000beef",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "forged",
        },
        ec.generate_private_key(ec.SECP256R1()),
        algorithm="ES256",
    )
    resp = client.get("/v1/enrollments", headers=auth(forged))
    assert resp.status_code == 401


def test_valid_token_is_accepted(client: TestClient) -> None:
    resp = client.get("/v1/enrollments", headers=auth(_signed()))
    assert resp.status_code == 200
    assert resp.json() == []


# ---- logging assertions ----


def test_expired_token_logs_warning(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    past = datetime.now(UTC) - timedelta(minutes=10)
    token = _signed(exp=past + timedelta(minutes=5), iat=past)
    with caplog.at_level(logging.WARNING, logger="lms.api.dependencies"):
        client.get("/v1/enrollments", headers=auth(token))
    assert any("Expired token" in m for m in caplog.messages)


def test_non_learner_subject_logs_warning(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="lms.api.dependencies"):
        resp = client.get("/v1/enrollments", headers=auth(_signed(sub="svc-reporting")))
    assert resp.status_code == 403
    assert any("not a learner id" in m for m in caplog.messages)


def test_missing_role_logs_warning(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="lms.api.dependencies"):
        resp = client.post(
            "/v1/enrollments/recalculate",
            json={"enrollment_ids": ["00000000-0000-0000-0000-000000000001"]},
            headers=auth(_signed()),
        )
    assert resp.status_code == 403
    assert any("missing role=admin" in m for m in caplog.messages)

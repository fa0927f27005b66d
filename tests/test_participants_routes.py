"""Tests for the internal participant routes (worker role)."""

from __future__ import annotations

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from zapcrm.api.factory import create_app
from zapcrm.domain.models import ResolvedParticipant

from .helpers import make_participant

SC_MOBILE = "whatsapp:+5548999330297"


@pytest.fixture
def worker_client():
    return TestClient(create_app(role="worker"))


@pytest.fixture
def authed():
    with patch("zapcrm.api.task_auth.verify_task_auth", return_value=True):
        yield


@contextmanager
def _mock_txn():
    yield MagicMock()


class TestAuth:
    @pytest.mark.parametrize(
        "method,path,kwargs",
        [
            ("post", "/internal/participants/resolve", {"json": {"phone": "+5548999330297"}}),
            ("post", "/internal/participants", {"json": {"phone": "+5548999330297"}}),
            ("get", "/internal/participants/similar", {"params": {"phone": "48999330297"}}),
        ],
    )
    def test_no_auth_returns_401(self, worker_client, method, path, kwargs):
        response = getattr(worker_client, method)(path, **kwargs)
        assert response.status_code == 401

    def test_unauthenticated_invalid_body_still_401(self, worker_client):
        response = worker_client.post("/internal/participants/resolve", json={})
        assert response.status_code == 401

    def test_not_mounted_on_public(self):
        client = TestClient(create_app(role="public"))
        response = client.post("/internal/participants/resolve", json={"phone": "x"})
        assert response.status_code == 404


@pytest.mark.usefixtures("authed")
class TestResolve:
    def test_returns_resolved_participant(self, worker_client):
        resolved = ResolvedParticipant(id="p-1", canonical_phone=SC_MOBILE, created=True)
        with (
            patch("zapcrm.api.routes.participants.txn", _mock_txn),
            patch("zapcrm.api.routes.participants.resolve_participant", return_value=resolved) as mock_resolve,
        ):
            response = worker_client.post(
                "/internal/participants/resolve", json={"phone": " +554899330297 "}
            )

        assert response.status_code == 200
        assert response.json() == {"id": "p-1", "canonical_phone": SC_MOBILE, "created": True}
        assert mock_resolve.call_args.args[1] == "+554899330297"

    @pytest.mark.parametrize("body", [{}, {"phone": ""}, {"phone": "   "}, {"phone": "1", "x": 1}])
    def test_invalid_body_returns_422(self, worker_client, body):
        response = worker_client.post("/internal/participants/resolve", json=body)
        assert response.status_code == 422

    def test_storage_failure_returns_500_without_details(self, worker_client):
        with (
            patch("zapcrm.api.routes.participants.txn", _mock_txn),
            patch(
                "zapcrm.api.routes.participants.resolve_participant",
                side_effect=RuntimeError("connection to 10.0.0.1 refused"),
            ),
        ):
            response = worker_client.post(
                "/internal/participants/resolve", json={"phone": "+5548999330297"}
            )

        assert response.status_code == 500
        assert response.json() == {"detail": "processing failed"}


@pytest.mark.usefixtures("authed")
class TestCreate:
    def test_new_participant_returns_201(self, worker_client):
        participant = make_participant("p-1", SC_MOBILE, cargo="CEO", tags=["lead"], consent=True)
        with (
            patch("zapcrm.api.routes.participants.txn", _mock_txn),
            patch(
                "zapcrm.api.routes.participants.create_participant",
                return_value=(participant, True),
            ) as mock_create,
        ):
            response = worker_client.post(
                "/internal/participants",
                json={"phone": "48999330297", "cargo": "CEO", "tags": ["lead"], "consent": True},
            )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "p-1"
        assert data["cargo"] == "CEO"
        assert data["tags"] == ["lead"]
        attributes = mock_create.call_args.args[2]
        assert attributes["cargo"] == "CEO"
        assert attributes["name"] is None
        assert "phone" not in attributes

    def test_existing_participant_returns_200(self, worker_client):
        participant = make_participant("p-1", SC_MOBILE)
        with (
            patch("zapcrm.api.routes.participants.txn", _mock_txn),
            patch(
                "zapcrm.api.routes.participants.create_participant",
                return_value=(participant, False),
            ),
        ):
            response = worker_client.post("/internal/participants", json={"phone": SC_MOBILE})

        assert response.status_code == 200

    def test_unknown_field_returns_422(self, worker_client):
        response = worker_client.post(
            "/internal/participants", json={"phone": SC_MOBILE, "nickname": "x"}
        )
        assert response.status_code == 422


@pytest.mark.usefixtures("authed")
class TestSimilar:
    def test_lists_variants(self, worker_client):
        found = [
            make_participant("p-1", "whatsapp:+554899330297"),
            make_participant("p-2", SC_MOBILE, minutes=5),
        ]
        with (
            patch("zapcrm.api.routes.participants.txn", _mock_txn),
            patch(
                "zapcrm.api.routes.participants.find_similar_participants",
                return_value=found,
            ),
        ):
            response = worker_client.get(
                "/internal/participants/similar", params={"phone": "48999330297"}
            )

        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == ["p-1", "p-2"]

    def test_missing_phone_returns_422(self, worker_client):
        response = worker_client.get("/internal/participants/similar")
        assert response.status_code == 422

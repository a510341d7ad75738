"""Unit tests for the application factory, middleware and identity handling."""

import pytest
from fastapi.testclient import TestClient

from studygen.api.app import create_app, status_for
from studygen.api.auth import MAX_USER_ID_LENGTH
from studygen.core.exceptions import (
    ConfigurationError,
    EmbeddingError,
    InvalidJSONError,
    QueueError,
    SchemaValidationError,
)


@pytest.mark.parametrize(
    "error, expected",
    [
        (InvalidJSONError(), 502),
        (SchemaValidationError(["flashcards: Field required"]), 502),
        (EmbeddingError("no vector"), 502),
        (QueueError("redis down"), 500),
        (ConfigurationError("missing key"), 500),
    ],
)
def test_status_for(error, expected):
    assert status_for(error) == expected


class TestMiddleware:
    def test_correlation_id_generated(self, services):
        client = TestClient(create_app(services=services))

        response = client.get("/health/live")

        assert len(response.headers["X-Correlation-ID"]) == 36

    def test_anonymous_history_rejected(self, services):
        client = TestClient(create_app(services=services))

        assert client.get("/history", headers={"X-User-Id": "   "}).status_code == 401

    def test_user_id_trimmed_to_limit(self, services, repository):
        client = TestClient(create_app(services=services))
        long_id = "u" * (MAX_USER_ID_LENGTH + 20)

        response = client.get("/history", headers={"X-User-Id": long_id})

        assert response.status_code == 200
        assert response.json() == []


class TestLifespan:
    def test_workers_started_and_stopped(self, services):
        app = create_app(services=services, start_workers=True)

        with TestClient(app) as client:
            assert services.queue.running is True
            ready = client.get("/health/ready").json()
            assert ready["checks"]["workers"] is True
            lifecycle = app.state.lifecycle_manager

        assert services.queue.running is False
        assert lifecycle.state.phase.value == "complete"

    def test_injected_services_without_workers(self, services):
        app = create_app(services=services)

        with TestClient(app) as client:
            assert client.get("/health/ready").json()["checks"]["workers"] is False

        assert app.state.lifecycle_manager.job_store is None

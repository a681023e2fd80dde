"""
HTTP tests for the chat and health endpoints.
"""

import random
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.companion.api.chat_endpoints import get_orchestrator
from src.companion.api.main import app
from src.companion.processors.orchestrator import ConversationOrchestrator


@pytest.fixture
def orchestrator(offline_settings, repository):
    return ConversationOrchestrator(offline_settings, repository, rng=random.Random(3))


@pytest.fixture
def client(orchestrator):
    """Test client without the lifespan, wired to an offline orchestrator."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestChatEndpoint:
    """Test POST /api/chat/ai."""

    def test_reply(self, client, repository):
        response = client.post("/api/chat/ai", json={
            "userId": "user-1",
            "message": "Hola, buenos días",
            "messageHistory": [{"role": "assistant", "content": "¡Hola!"}],
        })

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"response", "responseTime"}
        assert "María" in data["response"]
        assert isinstance(data["responseTime"], int)
        assert repository.activities[-1].description == "Conversación con asistente IA - Conversación general"

    def test_topic_and_health_alert_are_logged(self, client, repository):
        response = client.post("/api/chat/ai", json={"userId": "user-1", "message": "Hoy estoy algo mareado"})

        assert response.status_code == 200
        kinds = [(a.activity_type, a.description) for a in repository.activities]
        assert ("health_alert", "Alerta de salud detectada: Mareos reportados - verificar con familiar") in kinds

    def test_missing_fields(self, client):
        response = client.post("/api/chat/ai", json={"userId": "user-1"})

        assert response.status_code == 400
        assert response.json()["message"] == "userId y message son requeridos"
        assert "body.message" in response.json()["fields"]

    def test_blank_message(self, client):
        response = client.post("/api/chat/ai", json={"userId": "user-1", "message": "   "})
        assert response.status_code == 400

    def test_unknown_user(self, client):
        response = client.post("/api/chat/ai", json={"userId": "nadie", "message": "Hola"})

        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "Usuario no encontrado"

    def test_repository_failure(self, orchestrator, client):
        orchestrator.repository = AsyncMock()
        orchestrator.repository.get_user.side_effect = RuntimeError("db down")

        response = client.post("/api/chat/ai", json={"userId": "user-1", "message": "Hola"})

        assert response.status_code == 503


class TestHealthEndpoints:
    """Test liveness and readiness checks."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["checks"] == {"repository": "healthy", "llm": "offline"}

    def test_not_ready(self):
        orchestrator = MagicMock()
        orchestrator.repository.ping = AsyncMock(return_value=False)
        orchestrator.llm_enabled = True
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        try:
            response = TestClient(app).get("/health/ready")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["detail"]["checks"]["repository"] == "unhealthy"

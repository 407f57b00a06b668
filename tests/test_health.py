"""Tests for the /healthz endpoint."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from aws_source.health import create_health_app, create_health_server


def client_for(connected):
    engine = MagicMock()
    engine.is_nats_connected.return_value = connected
    return TestClient(create_health_app(engine))


def test_healthz_ok():
    response = client_for(True).get("/healthz")

    assert response.status_code == 200
    assert response.text == "ok"


def test_healthz_nats_not_connected():
    response = client_for(False).get("/healthz")

    assert response.status_code == 500
    assert response.text == "NATS not connected"


def test_docs_are_disabled():
    assert client_for(True).get("/docs").status_code == 404


def test_health_server_config():
    server = create_health_server(MagicMock(), port=9090)

    assert server.config.port == 9090
    assert server.config.host == "0.0.0.0"

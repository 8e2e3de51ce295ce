"""Tests for the probe endpoints."""

import pytest
from fastapi.testclient import TestClient

from controller.exceptions import ConfigurationError
from controller.main import app, manager


@pytest.fixture
def client():
    """Create FastAPI test client (startup hooks are not run)."""
    return TestClient(app)


def test_healthz(client):
    response = client.get('/healthz')
    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'


def test_readyz_before_start(client):
    response = client.get('/readyz')
    assert response.status_code == 503
    data = response.json()
    assert data['ready'] is False
    assert data['checks']['queue'] == 'not running'


def test_readyz_when_all_checks_pass(client, monkeypatch):
    monkeypatch.setattr(manager, 'readiness', lambda: {'queue': 'ok', 'watch:configmap': 'ok'})

    response = client.get('/readyz')

    assert response.status_code == 200
    assert response.json() == {'ready': True, 'checks': {'queue': 'ok', 'watch:configmap': 'ok'}}


def test_readyz_reports_failing_check(client, monkeypatch):
    monkeypatch.setattr(manager, 'readiness', lambda: {'queue': 'ok', 'database': 'error: down'})

    response = client.get('/readyz')

    assert response.status_code == 503
    assert response.json()['checks']['database'] == 'error: down'


def test_controller_exception_is_json_error(client, monkeypatch):
    def failing_readiness():
        raise ConfigurationError("database is not initialized")

    monkeypatch.setattr(manager, 'readiness', failing_readiness)

    response = client.get('/readyz')

    assert response.status_code == 500
    assert response.json() == {'detail': 'database is not initialized', 'code': 'INTERNAL_ERROR'}

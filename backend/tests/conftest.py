"""
Configuration partagée pour tous les tests.
Override la dépendance get_db pour éviter toute connexion réelle à PostgreSQL,
et get_caller pour choisir l'identité de l'appelant sans jeton.
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from app.database import get_db
from app.main import app
from app.security import CallerContext, Role, get_caller


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def client(mock_db):
    """Client HTTP de test avec la BDD mockée."""
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def teacher():
    return CallerContext(caller_id=uuid.uuid4(), role=Role.TEACHER)


@pytest.fixture
def student():
    return CallerContext(caller_id=uuid.uuid4(), role=Role.STUDENT)


@pytest.fixture
def admin():
    return CallerContext(caller_id=uuid.uuid4(), role=Role.ADMIN)


@pytest.fixture
def as_caller():
    """Fixe l'appelant des requêtes suivantes : as_caller(teacher)."""
    def _set(caller: CallerContext) -> CallerContext:
        app.dependency_overrides[get_caller] = lambda: caller
        return caller
    return _set

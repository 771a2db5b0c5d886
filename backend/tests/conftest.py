"""
Configuration partagée pour tous les tests.
Override la dépendance get_db pour éviter toute connexion réelle à PostgreSQL.
La file hors-ligne, elle, tourne sur un vrai fichier SQLite temporaire.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from attendance_app.client.offline_queue import OfflineQueue
from attendance_app.database import get_db
from attendance_app.main import app


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def queue_url(tmp_path):
    return f"sqlite:///{tmp_path / 'offline_queue.db'}"


@pytest.fixture
def offline_queue(queue_url):
    """File d'attente hors-ligne sur un fichier SQLite propre à chaque test."""
    q = OfflineQueue(queue_url)
    yield q
    q.close()

import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from feedback.core.config import BUNDLED_AWARDS
from feedback.core.database import get_awards, get_entitlements, get_reconciler, get_store
from feedback.core.settings_store import MemorySettings
from feedback.services.award_service import load_awards
from feedback.services.store import DataStore
from feedback.services.sync_service import EntitlementMonitor, SyncReconciler

PRODUCT_ID = "test.premiumUnlock"


@pytest.fixture
def db_url(tmp_path):
    """Une base SQLite fichier par test (le reconciler a besoin d'une 2e connexion)"""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def store(db_url):
    """Store avec une fenêtre de debounce courte"""
    store = DataStore(db_url, MemorySettings(), save_delay=0.05)
    yield store
    store.close()


@pytest.fixture
def reconciler(store):
    return SyncReconciler(store)


@pytest.fixture
def entitlements(store):
    return EntitlementMonitor(store, product_id=PRODUCT_ID)


@pytest.fixture
def awards():
    return load_awards(BUNDLED_AWARDS)


@pytest.fixture
def client(store, reconciler, entitlements, awards):
    """Client de test FastAPI branché sur le store du test"""
    from fastapi.testclient import TestClient
    from feedback.main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_entitlements] = lambda: entitlements
    app.dependency_overrides[get_awards] = lambda: awards
    yield TestClient(app)
    app.dependency_overrides.clear()

"""
Fixtures partagées: application FastAPI branchée sur des doublures en mémoire.

Run: pytest backend/tests -v
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from config import IMPORT_BUCKET
from tests.fakes import FakeAuthProvider, FakeChangeFeed, FakeDB, FakeObjectStore, FakeQueue

ROLES = ["super_admin", "gerant", "responsable_production", "employe", "comptable", "rh", "client"]


def new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def db():
    return FakeDB()


@pytest.fixture
def store():
    return FakeObjectStore(buckets=[IMPORT_BUCKET])


@pytest.fixture
def auth_provider():
    return FakeAuthProvider()


@pytest.fixture
def change_feed():
    return FakeChangeFeed()


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def users(db, auth_provider):
    """Un compte actif par rôle. Token: "token-<rôle>" """
    created = {}
    for role in ROLES:
        user = {
            "id": new_id(),
            "email": f"{role}@exeteam.fr",
            "first_name": role.capitalize(),
            "last_name": "Test",
            "role": role,
            "is_active": True,
        }
        db.users.seed(user)
        auth_provider.add_account(
            user["email"], "MotDePasse!1", {"id": user["id"], "email": user["email"]},
            token=f"token-{role}",
        )
        created[role] = user
    return created


@pytest.fixture
def app(db, store, auth_provider, change_feed, queue, users):
    from server import create_app
    return create_app(
        db=db,
        storage=store,
        auth_provider=auth_provider,
        change_feed=change_feed,
        import_queue=queue,
        provision_bucket=False,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


def headers_for(role: str) -> dict:
    return {"Authorization": f"Bearer token-{role}"}


@pytest.fixture
def admin_headers():
    return headers_for("super_admin")

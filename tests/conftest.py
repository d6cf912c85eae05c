import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import USERS, ensure_indexes, get_db, utcnow
from errors import Unauthenticated
from identity import TokenVerifier, get_verifier
from payments import get_gateway


class FakeVerifier(TokenVerifier):
    """Accepts ``token-<email>`` and rejects everything else."""

    def verify(self, token):
        if not token.startswith("token-"):
            raise Unauthenticated()
        return {"email": token[len("token-"):], "email_verified": True}


class FakeGateway:
    def __init__(self):
        self.amounts = []

    def create_intent(self, amount):
        self.amounts.append(amount)
        return "pi_secret_123"


@pytest.fixture
def db():
    database = mongomock.MongoClient().bloodgrid_test
    ensure_indexes(database)
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[get_verifier] = lambda: FakeVerifier()
    main.app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def headers(email):
        return {"Authorization": f"Bearer token-{email}"}
    return headers


@pytest.fixture
def make_user(db):
    def _make(email, role="donor", status="active", **fields):
        doc = {"email": email, "role": role, "status": status, "createdAt": utcnow(), "lastLoginAt": utcnow()}
        doc.update(fields)
        return str(db[USERS].insert_one(doc).inserted_id)
    return _make

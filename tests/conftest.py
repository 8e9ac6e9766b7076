"""
Pytest configuration and fixtures for the API tests
"""
import os

os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017/asset_management_test")
os.environ.setdefault("DB_PAYMENT_STRIPE_SECRET", "sk_test_dummy")
os.environ.setdefault("WEBSITE_DOMAIN", "http://localhost:5173/")

import mongomock
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import database
from auth import get_token_verifier
from database import USERS, get_db
from main import app
from payments import get_payment_gateway
from schemas import CheckoutSession

HR_EMAIL = "hr@acme.com"
OTHER_HR_EMAIL = "hr@globex.com"
EMPLOYEE_EMAIL = "employee@acme.com"


class FakeVerifier:
    """Treats the bearer token itself as the verified email."""

    def verify(self, token):
        if token == "invalid":
            raise HTTPException(status_code=401, detail="Invalid token")
        return token


class FakeGateway:
    def __init__(self):
        self.sessions = {}
        self.created = []

    def add_session(self, session_id, **fields):
        self.sessions[session_id] = CheckoutSession(id=session_id, **fields)

    def create_checkout_session(self, **params):
        self.created.append(params)
        session_id = f"cs_test_{len(self.created)}"
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    def retrieve_session(self, session_id):
        return self.sessions.get(session_id)


@pytest.fixture
def db():
    mongo = mongomock.MongoClient()
    test_db = mongo["asset_management_test"]
    database.ensure_indexes(test_db)
    yield test_db
    mongo.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_token_verifier] = lambda: FakeVerifier()
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def hr_user(db):
    db[USERS].insert_one({"email": HR_EMAIL, "role": "hr", "packageLimit": 5, "companyName": "Acme"})
    db[USERS].insert_one({"email": OTHER_HR_EMAIL, "role": "hr", "packageLimit": 5, "companyName": "Globex"})
    db[USERS].insert_one({"email": EMPLOYEE_EMAIL, "role": "employee", "packageLimit": 0})
    return HR_EMAIL


def auth(email):
    return {"Authorization": f"Bearer {email}"}

from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_access_token, hash_password
from config import Settings
from database import PRODUCTS, USERS, Database, create_document, utcnow
from main import create_app


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        database_name="e-shop-test",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
    )


@pytest.fixture
def database(settings):
    return Database(mongomock.MongoClient(), settings.database_name)


@pytest.fixture
def client(settings, database):
    app = create_app(settings=settings, database=database)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(database, settings):
    def _make(name="Carol", email=None, role="user", password="secret123"):
        return create_document(database, USERS, {
            "name": name,
            "email": email or f"{name.lower()}@example.com",
            "password": hash_password(password, settings.bcrypt_rounds),
            "role": role,
        })
    return _make


@pytest.fixture
def headers_for(settings):
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user['_id'], settings)}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("Admin", role="admin")


@pytest.fixture
def customer(make_user):
    return make_user("Carol")


@pytest.fixture
def make_product(database):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Product {counter['n']}",
            "description": "A product",
            "price": 10.0,
            "category": "Electronics",
            "brand": "Acme",
            "countInStock": 10,
            "imageUrl": "/images/product.jpg",
            "rating": 0,
            "numReviews": 0,
        }
        data.update(overrides)
        doc = create_document(database, PRODUCTS, data)
        # distinct creation times keep "newest first" deterministic
        created = utcnow() + timedelta(seconds=counter["n"])
        database.products.update_one({"_id": doc["_id"]}, {"$set": {"createdAt": created}})
        doc["createdAt"] = created
        return doc
    return _make

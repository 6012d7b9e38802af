import mongomock
from fastapi.testclient import TestClient

from main import create_app
from schemas import Product, UserCreate, validate_order, validate_product, validate_user


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "E-commerce API running!"}
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_api_directory(client):
    body = client.get("/api/docs").json()
    assert "GET /api/products" in body["endpoints"]["products"]


def test_unknown_route(client):
    r = client.get("/api/nothing/here")
    assert r.status_code == 404
    assert r.json() == {"message": "Not found - /api/nothing/here"}


def test_malformed_body_is_a_400(client, admin, headers_for):
    r = client.post("/api/products", content="not json", headers={**headers_for(admin), "Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid request data"


def test_unexpected_errors_become_500(settings, database, monkeypatch):
    app = create_app(settings=settings, database=database)

    def boom(*args, **kwargs):
        raise RuntimeError("store unavailable")

    with TestClient(app, raise_server_exceptions=False) as c:
        monkeypatch.setattr(mongomock.Collection, "distinct", boom)
        r = c.get("/api/products/categories/all")
    assert r.status_code == 500
    assert r.json()["message"] == "Server error"
    assert r.json()["error"] == "store unavailable"
    assert "stack" in r.json()


def test_stack_hidden_in_production(settings, database, monkeypatch):
    prod = settings.model_copy(update={"environment": "production"})
    app = create_app(settings=prod, database=database)

    def boom(*args, **kwargs):
        raise RuntimeError("store unavailable")

    with TestClient(app, raise_server_exceptions=False) as c:
        monkeypatch.setattr(mongomock.Collection, "distinct", boom)
        r = c.get("/api/products/categories/all")
    assert r.status_code == 500
    assert r.json() == {"message": "Server error"}


def test_validate_product():
    good = {"name": "Pen", "description": "Blue", "price": 1, "category": "Office", "brand": "Bic",
            "imageUrl": "/pen.jpg"}
    assert validate_product(good) == []
    assert validate_product({}, partial=True) == []

    errors = validate_product(dict(good, countInStock=-1, rating=5.5))
    assert {e.field for e in errors} == {"countInStock", "rating"}
    assert Product.model_validate(dict(good, name="  Pen  ")).name == "Pen"


def test_validate_order():
    errors = validate_order({"orderItems": [{"product": "abc", "quantity": 1}], "paymentMethod": "Stripe"})
    assert [e.field for e in errors] == ["shippingAddress"]


def test_validate_user():
    assert [e.field for e in validate_user({"name": "A", "email": "bad", "password": "secret1"})] == ["email"]
    assert validate_user({"role": "owner"}, partial=True)[0].field == "role"
    assert UserCreate.model_validate({"name": "A", "email": "A@Example.com", "password": "secret1"}).email == \
        "a@example.com"


def test_app_logger_is_configured(settings, database):
    import main
    from logging_config import LOGGER_NAMES, RequestFormatter

    create_app(settings=settings, database=database)
    assert main.logger.name in LOGGER_NAMES
    assert any(isinstance(h.formatter, RequestFormatter) for h in main.logger.handlers)

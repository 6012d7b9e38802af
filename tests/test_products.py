from bson import ObjectId

NEW_PRODUCT = {
    "name": "Wireless Mouse",
    "description": "Ergonomic mouse",
    "price": 25.5,
    "category": "Accessories",
    "brand": "Logi",
    "countInStock": 7,
    "imageUrl": "/images/mouse.jpg",
}


def test_list_products_shape_and_default_page_size(client, make_product):
    for _ in range(14):
        make_product()
    r = client.get("/api/products")
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"products", "page", "pages", "total"}
    assert len(body["products"]) == 12
    assert (body["page"], body["pages"], body["total"]) == (1, 2, 14)
    assert body["products"][0]["name"] == "Product 14"
    assert isinstance(body["products"][0]["_id"], str)


def test_list_products_filters_are_conjunctive(client, make_product):
    make_product(name="Smart TV", category="Electronics", price=500)
    make_product(name="tv stand", category="Furniture", price=80)
    make_product(name="Retro TV", category="Electronics", price=90)
    make_product(name="Laptop", category="Electronics", price=900)

    r = client.get("/api/products", params={"keyword": "TV", "category": "Electronics", "minPrice": "100"})
    names = [p["name"] for p in r.json()["products"]]
    assert names == ["Smart TV"]

    r = client.get("/api/products", params={"keyword": "tv"})
    assert r.json()["total"] == 3

    r = client.get("/api/products", params={"maxPrice": "90"})
    assert sorted(p["name"] for p in r.json()["products"]) == ["Retro TV", "tv stand"]


def test_malformed_numbers_do_not_fail(client, make_product):
    make_product()
    r = client.get("/api/products", params={"minPrice": "cheap", "pageNumber": "abc", "pageSize": "-3"})
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["page"] == 1


def test_page_past_the_end_is_empty(client, make_product):
    for _ in range(3):
        make_product()
    r = client.get("/api/products", params={"pageNumber": 5, "pageSize": 2})
    assert r.status_code == 200
    assert r.json() == {"products": [], "page": 5, "pages": 2, "total": 3}


def test_get_product(client, make_product):
    p = make_product(name="Keyboard")
    r = client.get(f"/api/products/{p['_id']}")
    assert r.status_code == 200
    assert r.json()["name"] == "Keyboard"


def test_get_product_not_found(client):
    assert client.get(f"/api/products/{ObjectId()}").status_code == 404
    r = client.get("/api/products/not-an-id")
    assert r.status_code == 404
    assert r.json() == {"message": "Product not found"}


def test_create_product_requires_admin(client, customer, headers_for):
    assert client.post("/api/products", json=NEW_PRODUCT).status_code == 401
    r = client.post("/api/products", json=NEW_PRODUCT, headers=headers_for(customer))
    assert r.status_code == 403
    assert r.json()["message"] == "Not authorized as an admin"


def test_create_product(client, admin, headers_for, database):
    r = client.post("/api/products", json=NEW_PRODUCT, headers=headers_for(admin))
    assert r.status_code == 201
    body = r.json()
    assert body["countInStock"] == 7
    assert body["rating"] == 0
    assert body["numReviews"] == 0
    assert "createdAt" in body and "updatedAt" in body
    assert database.products.count_documents({}) == 1


def test_create_product_validation(client, admin, headers_for, database):
    bad = dict(NEW_PRODUCT, price=-1, name="x" * 101)
    del bad["brand"]
    r = client.post("/api/products", json=bad, headers=headers_for(admin))
    assert r.status_code == 400
    fields = {e["field"] for e in r.json()["errors"]}
    assert {"price", "name", "brand"} <= fields
    assert database.products.count_documents({}) == 0


def test_update_product_partial(client, admin, headers_for, make_product):
    p = make_product(name="Old", price=10, countInStock=4)
    r = client.put(f"/api/products/{p['_id']}", json={"price": 12.5, "countInStock": 0},
                   headers=headers_for(admin))
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "Old"
    assert body["price"] == 12.5
    assert body["countInStock"] == 0


def test_update_product_rejects_bad_values(client, admin, headers_for, make_product):
    p = make_product()
    r = client.put(f"/api/products/{p['_id']}", json={"rating": 6}, headers=headers_for(admin))
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "rating"


def test_update_missing_product(client, admin, headers_for):
    r = client.put(f"/api/products/{ObjectId()}", json={"price": 1}, headers=headers_for(admin))
    assert r.status_code == 404


def test_delete_product(client, admin, headers_for, make_product):
    p = make_product()
    r = client.delete(f"/api/products/{p['_id']}", headers=headers_for(admin))
    assert r.status_code == 200
    assert r.json() == {"message": "Product removed"}
    assert client.delete(f"/api/products/{p['_id']}", headers=headers_for(admin)).status_code == 404


def test_top_rated(client, make_product):
    for rating in [1, 4.5, 3, 5, 2, 4, 0.5]:
        make_product(rating=rating)
    r = client.get("/api/products/top/rated")
    assert r.status_code == 200
    assert [p["rating"] for p in r.json()] == [5, 4.5, 4, 3, 2]


def test_categories(client, make_product):
    make_product(category="Books")
    make_product(category="Audio")
    make_product(category="Books")
    assert client.get("/api/products/categories/all").json() == ["Audio", "Books"]

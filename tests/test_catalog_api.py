from decimal import Decimal

from storefront.models import Category
from storefront.services.common import like_pattern


def test_like_pattern_escapes_wildcards():
    assert like_pattern("50%_off") == "%50\\%\\_off%"


def test_list_products_hides_inactive(client, make_product):
    visible = make_product(name="Visible Phone")
    make_product(name="Retired Phone", is_active=False)

    response = client.get("/api/user/products")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["products"][0]["id"] == visible.id
    assert body["products"][0]["category"]["name"] == "Electronics"


def test_list_products_filters_and_sorts(client, make_product):
    make_product(name="Budget Laptop", price="300.00")
    make_product(name="Pro Laptop", price="1500.00")
    make_product(name="Desk Lamp", price="25.00")

    response = client.get(
        "/api/user/products",
        params={"search": "laptop", "min_price": "100", "sort_by": "price", "sort_order": "asc"},
    )

    names = [product["name"] for product in response.json()["products"]]
    assert names == ["Budget Laptop", "Pro Laptop"]

    capped = client.get("/api/user/products", params={"max_price": "100"})
    assert [product["name"] for product in capped.json()["products"]] == ["Desk Lamp"]


def test_search_treats_wildcards_literally(client, make_product):
    make_product(name="Plain Mug")

    response = client.get("/api/user/products", params={"search": "%"})

    assert response.json()["total"] == 0


def test_list_products_paginates(client, make_product):
    for _ in range(5):
        make_product()

    response = client.get("/api/user/products", params={"page": 2, "limit": 2})

    body = response.json()
    assert body["count"] == 2
    assert body["total"] == 5
    assert body["total_pages"] == 3
    assert body["current_page"] == 2


def test_list_products_rejects_unknown_sort(client):
    response = client.get("/api/user/products", params={"sort_by": "password"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_product_detail(client, make_product):
    product = make_product(price="12.50")
    retired = make_product(is_active=False)

    found = client.get(f"/api/user/products/{product.id}")
    hidden = client.get(f"/api/user/products/{retired.id}")
    missing = client.get("/api/user/products/9999")

    assert found.status_code == 200
    assert Decimal(found.json()["product"]["price"]) == Decimal("12.50")
    assert hidden.status_code == 404
    assert missing.status_code == 404


def test_categories_with_active_product_counts(client, db, category, make_product):
    make_product()
    make_product()
    make_product(is_active=False)
    empty = Category(name="Books")
    hidden = Category(name="Archived", is_active=False)
    db.add_all([empty, hidden])
    db.commit()

    response = client.get("/api/user/categories")

    counts = {entry["name"]: entry["product_count"] for entry in response.json()["categories"]}
    assert counts == {"Books": 0, "Electronics": 2}

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.errors import ValidationError
from storefront.models import Category
from storefront.services.report_service import ReportService


@pytest.fixture
def reports():
    return ReportService()


@pytest.fixture
def sales(db, user, category, make_product, make_order):
    books = Category(name="Books")
    db.add(books)
    db.commit()

    phone = make_product(name="Phone", price="300.00")
    cable = make_product(name="Cable", price="5.00")
    novel = make_product(name="Novel", price="12.00", category_id=books.id)
    unsold = make_product(name="Dusty Gadget", price="1.00", stock=50)

    make_order(user, [(phone, 1, "300.00"), (cable, 4, "5.00")], status="delivered")
    make_order(user, [(cable, 2, "5.00"), (novel, 1, "12.00")], status="confirmed")
    # Neither pending nor cancelled lines count as sold.
    make_order(user, [(novel, 10, "12.00")], status="pending")
    make_order(user, [(phone, 3, "300.00")], status="cancelled")

    return {"phone": phone, "cable": cable, "novel": novel, "unsold": unsold}


def as_decimal(value):
    return Decimal(str(value))


def test_sales_by_category(reports, db, sales):
    rows = reports.sales_by_category(db)

    assert [row["category_name"] for row in rows] == ["Electronics", "Books"]
    electronics = rows[0]
    assert electronics["total_items_sold"] == 3
    assert electronics["total_quantity"] == 7
    assert as_decimal(electronics["total_revenue"]) == Decimal("330.00")
    assert as_decimal(rows[1]["total_revenue"]) == Decimal("12.00")


def test_top_selling_products(reports, db, sales):
    rows = reports.top_selling_products(db, limit=2)

    assert [row["product_name"] for row in rows] == ["Cable", "Phone"]
    assert rows[0]["total_quantity_sold"] == 6
    assert rows[0]["total_orders"] == 2


def test_worst_selling_includes_unsold_products(reports, db, sales):
    rows = reports.worst_selling_products(db, limit=2)

    assert rows[0]["product_name"] == "Dusty Gadget"
    assert rows[0]["total_quantity_sold"] == 0
    assert rows[1]["product_name"] in ("Phone", "Novel")


def test_date_range_filters_orders(reports, db, sales):
    future = datetime.utcnow() + timedelta(days=1)

    assert reports.sales_by_category(db, start_date=future) == []
    assert reports.top_selling_products(db, end_date=datetime.utcnow() - timedelta(days=1)) == []


def test_inverted_date_range_is_rejected(reports, db):
    now = datetime.utcnow()
    with pytest.raises(ValidationError):
        reports.sales_by_category(db, start_date=now, end_date=now - timedelta(days=1))


def test_report_endpoint(client, admin, auth_headers, sales):
    response = client.get(
        "/api/admin/reports/top-selling-products",
        params={"limit": 1},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [row["product_name"] for row in body["data"]] == ["Cable"]

from datetime import date, datetime, timezone
from decimal import Decimal

from stockpos.services import product_service, stats_service
from stockpos.services.sales_service import SaleFilters, SaleHeader, SaleLineInput, SaleService


def _product(client, headers, name: str, *, stock: float, purchase: float, sale: float) -> int:
    res = client.post(
        "/products",
        json={
            "name": name,
            "category": "abarrotes",
            "purchase_price": purchase,
            "sale_price": sale,
            "opening_stock": stock,
        },
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


def _sell(client, headers, product_id: int, qty: float, price: float, method: str = "efectivo") -> int:
    res = client.post(
        "/sales",
        json={
            "total": qty * price,
            "payment_method": method,
            "lines": [{"product_id": product_id, "quantity": qty, "unit_price": price, "subtotal": qty * price}],
        },
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


def test_supplier_crud_and_conflicts(test_context, owner_headers):
    client, _ = test_context

    created = client.post(
        "/suppliers",
        json={"name": "Distribuidora Norte", "rfc": "dno010101ab1", "email": "ventas@norte.mx"},
        headers=owner_headers,
    )
    assert created.status_code == 201, created.text
    supplier = created.json()["data"]
    assert supplier["rfc"] == "DNO010101AB1"

    same_name = client.post("/suppliers", json={"name": "distribuidora norte"}, headers=owner_headers)
    assert same_name.status_code == 409
    assert same_name.json()["error"] == "conflict"

    same_rfc = client.post("/suppliers", json={"name": "Otra", "rfc": "DNO010101AB1"}, headers=owner_headers)
    assert same_rfc.status_code == 409

    bad_rfc = client.post("/suppliers", json={"name": "Mala", "rfc": "123"}, headers=owner_headers)
    assert bad_rfc.status_code == 400
    assert bad_rfc.json()["error"] == "validation_error"

    updated = client.put(
        f"/suppliers/{supplier['id']}",
        json={"name": "Distribuidora Norte", "phone": "555-0101"},
        headers=owner_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["phone"] == "555-0101"

    entry = client.post(
        "/entries",
        json={
            "product_id": _product(client, owner_headers, "Atole", stock=0, purchase=5, sale=8),
            "quantity": 3,
            "purchase_price": 5,
            "supplier_id": supplier["id"],
        },
        headers=owner_headers,
    )
    assert entry.status_code == 201, entry.text
    assert entry.json()["data"]["supplier_name"] == "Distribuidora Norte"

    assert client.delete(f"/suppliers/{supplier['id']}", headers=owner_headers).status_code == 200
    active = client.get("/suppliers", params={"active": True}, headers=owner_headers).json()["data"]
    assert active["items"] == []
    stats = client.get("/suppliers/stats", headers=owner_headers).json()["data"]
    assert stats == {"total": 1, "active": 0, "inactive": 1, "with_entries": 1}


def test_stats_exclude_voided_sales(test_context, owner_headers, cashier_headers):
    client, _ = test_context
    arroz = _product(client, owner_headers, "Arroz", stock=100, purchase=10, sale=20)
    frijol = _product(client, owner_headers, "Frijol", stock=100, purchase=15, sale=30)

    _sell(client, cashier_headers, arroz, 3, 20)
    _sell(client, cashier_headers, frijol, 1, 30, method="transferencia")
    voided = _sell(client, cashier_headers, frijol, 10, 30)
    res = client.post(f"/sales/{voided}/void", json={"reason": "prueba"}, headers=owner_headers)
    assert res.status_code == 200

    dashboard = client.get("/stats/dashboard", headers=cashier_headers)
    assert dashboard.status_code == 200, dashboard.text
    today = dashboard.json()["data"]["today"]
    assert today == {"sales_count": 2, "revenue": 90.0, "average_sale": 45.0}

    top = client.get("/stats/top-products", headers=cashier_headers).json()["data"]
    assert [(row["name"], row["quantity_sold"]) for row in top] == [("Arroz", 3.0), ("Frijol", 1.0)]

    methods = client.get("/stats/payment-methods", headers=cashier_headers).json()["data"]
    shares = {row["payment_method"]: row for row in methods["methods"]}
    assert shares["efectivo"]["amount"] == 60.0
    assert shares["transferencia"]["count"] == 1
    assert methods["total"] == 90.0

    products = client.get("/stats/products", headers=cashier_headers).json()["data"]
    arroz_row = next(row for row in products["products"] if row["name"] == "Arroz")
    assert arroz_row["profit"] == 30.0
    assert arroz_row["stock_level"] == "ok"

    day = datetime.now(timezone.utc).date().isoformat()
    by_day = client.get(
        "/stats/sales", params={"start_date": day, "end_date": day}, headers=cashier_headers
    ).json()["data"]
    assert by_day["total_sales"] == 2
    assert by_day["total_revenue"] == 90.0
    assert by_day["best_day"]["revenue"] == 90.0

    summary = client.get("/sales/summary/daily", headers=cashier_headers).json()["data"]
    assert summary["sales_count"] == 2


def test_stats_reject_inverted_range(test_context, cashier_headers):
    client, _ = test_context

    res = client.get(
        "/stats/sales",
        params={"start_date": "2026-02-10", "end_date": "2026-02-01"},
        headers=cashier_headers,
    )

    assert res.status_code == 400
    assert res.json()["success"] is False


def test_health_endpoints(test_context):
    client, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    assert client.get("/ready").json() == {"ok": True}
    res = client.get("/")
    assert res.headers["X-Request-ID"]


def test_stats_and_sale_lists_agree_on_utc_day_boundaries(db):
    product_id = product_service.create_product(
        db,
        name="Cafe",
        category="abarrotes",
        purchase_price=Decimal("50.00"),
        sale_price=Decimal("80.00"),
        opening_stock=Decimal("10"),
    ).id
    sale = SaleService(db).create_sale(
        SaleHeader(total=Decimal("80.00"), payment_method="tarjeta_debito"),
        [SaleLineInput(product_id=product_id, quantity=Decimal("1"), unit_price=Decimal("80.00"), subtotal=Decimal("80.00"))],
    )
    sale.created_at = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)
    db.commit()

    first_day = date(2026, 3, 1)
    next_day = date(2026, 3, 2)

    by_day = stats_service.sales_by_day(db, start_date=first_day, end_date=first_day)
    assert [day["day"] for day in by_day["days"]] == [first_day]
    assert by_day["total_revenue"] == 80.0
    assert stats_service.sales_by_day(db, start_date=next_day, end_date=next_day)["days"] == []

    listed, total = SaleService(db).list_sales(SaleFilters(start_date=first_day, end_date=first_day))
    assert total == 1 and listed[0].id == sale.id
    assert SaleService(db).list_sales(SaleFilters(start_date=next_day, end_date=next_day))[1] == 0

    assert stats_service.get_dashboard(db, today=first_day)["today"]["sales_count"] == 1
    assert stats_service.get_dashboard(db, today=next_day)["today"]["sales_count"] == 0

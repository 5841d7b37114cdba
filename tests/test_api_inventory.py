from conftest import auth_headers, create_user, login


def _create_product(client, headers, *, name="Tomate", stock=10, min_stock=5, sale_price=3.0):
    res = client.post(
        "/products",
        json={
            "name": name,
            "category": "Verduras",
            "unit": "kg",
            "purchase_price": 2.0,
            "sale_price": sale_price,
            "opening_stock": stock,
            "min_stock": min_stock,
        },
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


def _stock(client, headers, product_id: int) -> float:
    res = client.get(f"/products/{product_id}", headers=headers)
    assert res.status_code == 200, res.text
    return res.json()["data"]["current_stock"]


def test_sale_flow_with_entry_void_and_envelopes(test_context, admin_headers):
    client, _ = test_context
    product = _create_product(client, admin_headers)
    assert product["category"] == "verduras"
    assert product["current_stock"] == 10.0

    entry_res = client.post(
        "/entries",
        json={"product_id": product["id"], "quantity": 5, "purchase_price": 2.0, "supplier_name": "Central"},
        headers=admin_headers,
    )
    assert entry_res.status_code == 201, entry_res.text
    assert entry_res.json()["data"]["total_value"] == 10.0
    assert _stock(client, admin_headers, product["id"]) == 15.0

    sale_res = client.post(
        "/sales",
        json={
            "customer_name": "Maria Lopez",
            "total": 36.0,
            "payment_method": "efectivo",
            "lines": [{"product_id": product["id"], "quantity": 12, "unit_price": 3.0, "subtotal": 36.0}],
        },
        headers=admin_headers,
    )
    assert sale_res.status_code == 201, sale_res.text
    body = sale_res.json()
    assert body["success"] is True
    assert body["message"] == "Sale registered"
    sale = body["data"]
    assert sale["status"] == "active"
    assert sale["lines"][0]["product_name"] == "Tomate"
    assert _stock(client, admin_headers, product["id"]) == 3.0

    short_res = client.post(
        "/sales",
        json={
            "total": 15.0,
            "payment_method": "efectivo",
            "lines": [{"product_id": product["id"], "quantity": 5, "unit_price": 3.0, "subtotal": 15.0}],
        },
        headers=admin_headers,
    )
    assert short_res.status_code == 400
    error = short_res.json()
    assert error["success"] is False
    assert error["error"] == "insufficient_stock"
    assert error["details"] == [{"product_id": product["id"], "available": 3.0, "requested": 5.0}]
    assert error["request_id"]

    void_res = client.post(f"/sales/{sale['id']}/void", json={"reason": "cliente canceló"}, headers=admin_headers)
    assert void_res.status_code == 200, void_res.text
    assert void_res.json()["data"]["status"] == "voided"
    assert _stock(client, admin_headers, product["id"]) == 15.0

    again_res = client.post(f"/sales/{sale['id']}/void", json={"reason": "otra vez"}, headers=admin_headers)
    assert again_res.status_code == 400
    assert again_res.json()["error"] == "already_voided"

    movements_res = client.get(f"/products/{product['id']}/movements", headers=admin_headers)
    kinds = [item["kind"] for item in movements_res.json()["data"]["items"]]
    assert kinds == ["void", "sale", "entry", "opening"]


def test_request_validation_errors_are_400_envelopes(test_context, admin_headers):
    client, _ = test_context

    res = client.post(
        "/sales",
        json={"total": 10, "payment_method": "cheque", "lines": []},
        headers=admin_headers,
    )

    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"
    fields = {detail["field"] for detail in body["details"]}
    assert "payment_method" in fields
    assert "lines" in fields


def test_missing_entities_return_404(test_context, admin_headers):
    client, _ = test_context

    assert client.get("/products/999", headers=admin_headers).status_code == 404
    assert client.get("/sales/999", headers=admin_headers).status_code == 404
    assert client.delete("/entries/999", headers=admin_headers).status_code == 404
    res = client.delete("/mermas/999", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["error"] == "not_found"


def test_cashier_can_sell_but_not_void_or_delete(test_context, admin_headers):
    client, session_factory = test_context
    create_user(session_factory, username="caja1", role="cashier")
    cashier = auth_headers(login(client, "caja1"))
    product = _create_product(client, admin_headers, stock=20)

    sale_res = client.post(
        "/sales",
        json={
            "total": 6.0,
            "payment_method": "tarjeta_credito",
            "lines": [{"product_id": product["id"], "quantity": 2, "unit_price": 3.0, "subtotal": 6.0}],
        },
        headers=cashier,
    )
    assert sale_res.status_code == 201, sale_res.text
    sale_id = sale_res.json()["data"]["id"]

    merma_res = client.post(
        "/mermas",
        json={"product_id": product["id"], "quantity": 1, "reason": "daño"},
        headers=cashier,
    )
    assert merma_res.status_code == 201, merma_res.text

    assert client.post(f"/sales/{sale_id}/void", json={"reason": "x"}, headers=cashier).status_code == 403
    assert client.delete(f"/mermas/{merma_res.json()['data']['id']}", headers=cashier).status_code == 403
    assert client.post(
        "/entries",
        json={"product_id": product["id"], "quantity": 1, "purchase_price": 2.0},
        headers=cashier,
    ).status_code == 403
    assert client.post("/products", json={"name": "X", "category": "y"}, headers=cashier).status_code in {400, 403}
    assert _stock(client, cashier, product["id"]) == 17.0


def test_product_stock_adjustment_and_low_stock(test_context, admin_headers):
    client, _ = test_context
    product = _create_product(client, admin_headers, name="Cilantro", stock=10, min_stock=4)
    _create_product(client, admin_headers, name="Ajo", stock=50, min_stock=4)

    res = client.put(f"/products/{product['id']}/stock", json={"stock": 3, "note": "conteo"}, headers=admin_headers)
    assert res.status_code == 200, res.text
    assert res.json()["data"]["current_stock"] == 3.0

    low = client.get("/products/low-stock", headers=admin_headers).json()["data"]
    assert [item["name"] for item in low] == ["Cilantro"]
    assert low[0]["stock_percentage"] == 75.0

    movements = client.get(f"/products/{product['id']}/movements", headers=admin_headers).json()["data"]["items"]
    assert movements[0]["kind"] == "adjustment"
    assert movements[0]["qty_delta"] == -7.0


def test_product_update_search_and_soft_delete(test_context, admin_headers):
    client, _ = test_context
    product = _create_product(client, admin_headers, name="Pepino")
    _create_product(client, admin_headers, name="Papaya")

    res = client.put(f"/products/{product['id']}", json={"sale_price": 4.5}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["sale_price"] == 4.5
    assert res.json()["data"]["current_stock"] == 10.0

    found = client.get("/products", params={"search": "pep"}, headers=admin_headers).json()["data"]
    assert [item["name"] for item in found["items"]] == ["Pepino"]

    assert client.delete(f"/products/{product['id']}", headers=admin_headers).status_code == 200
    listed = client.get("/products", headers=admin_headers).json()["data"]
    assert [item["name"] for item in listed["items"]] == ["Papaya"]
    assert listed["pagination"]["total"] == 1
    assert client.get(f"/products/{product['id']}", headers=admin_headers).status_code == 404


def test_entry_delete_rejected_after_stock_consumed(test_context, admin_headers):
    client, _ = test_context
    product = _create_product(client, admin_headers, stock=0)
    entry = client.post(
        "/entries",
        json={"product_id": product["id"], "quantity": 4, "purchase_price": 2.0},
        headers=admin_headers,
    ).json()["data"]
    client.post(
        "/mermas",
        json={"product_id": product["id"], "quantity": 3, "reason": "vencimiento"},
        headers=admin_headers,
    )

    res = client.delete(f"/entries/{entry['id']}", headers=admin_headers)

    assert res.status_code == 400
    assert res.json()["error"] == "insufficient_stock"
    assert _stock(client, admin_headers, product["id"]) == 1.0

def add(client, headers, product_id, quantity, user_id=None):
    payload = {"product_id": product_id, "quantity": quantity}
    if user_id:
        payload["user_id"] = user_id
    return client.post("/api/cart/add", json=payload, headers=headers)


def test_adding_same_product_merges_lines(client, customer, make_product):
    user, headers = customer
    product = make_product()
    assert add(client, headers, product["id"], 2).status_code == 200
    r = add(client, headers, product["id"], 3)
    assert r.status_code == 200
    items = r.json()["items"]
    assert len(items) == 1
    assert items[0]["product_id"] == product["id"]
    assert items[0]["quantity"] == 5


def test_adding_different_products_appends(client, customer, make_product):
    _, headers = customer
    sofa = make_product(name="Sofa")
    lamp = make_product(name="Lamp", price=40)
    add(client, headers, sofa["id"], 1)
    r = add(client, headers, lamp["id"], 2)
    body = r.json()
    assert [i["product_id"] for i in body["items"]] == [sofa["id"], lamp["id"]]
    assert body["subtotal"] == 580


def test_single_cart_document_per_user(client, db, customer, make_product):
    user, headers = customer
    product = make_product()
    add(client, headers, product["id"], 1)
    add(client, headers, product["id"], 1)
    assert db["cart"].count_documents({"user_id": user["id"]}) == 1


def test_remove_absent_product_is_noop(client, customer, make_product):
    user, headers = customer
    sofa = make_product(name="Sofa")
    lamp = make_product(name="Lamp")
    add(client, headers, sofa["id"], 2)
    r = client.delete(f"/api/cart/remove/{user['id']}/{lamp['id']}", headers=headers)
    assert r.status_code == 200
    assert [(i["product_id"], i["quantity"]) for i in r.json()["items"]] == [(sofa["id"], 2)]


def test_remove_item(client, customer, make_product):
    user, headers = customer
    sofa = make_product()
    add(client, headers, sofa["id"], 2)
    r = client.delete(f"/api/cart/remove/{user['id']}/{sofa['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["items"] == []


def test_remove_without_cart_is_not_found(client, customer, make_product):
    user, headers = customer
    sofa = make_product()
    r = client.delete(f"/api/cart/remove/{user['id']}/{sofa['id']}", headers=headers)
    assert r.status_code == 404


def test_cart_reads_live_prices(client, vendor, customer, make_product):
    user, headers = customer
    sofa = make_product(price=500)
    add(client, headers, sofa["id"], 2)
    client.put(f"/api/products/{sofa['id']}", json={"price": 450}, headers=vendor[1])
    body = client.get(f"/api/cart/{user['id']}", headers=headers).json()
    assert body["items"][0]["unit_price"] == 450
    assert body["subtotal"] == 900


def test_empty_cart(client, customer):
    user, headers = customer
    body = client.get(f"/api/cart/{user['id']}", headers=headers).json()
    assert body["items"] == []
    assert body["subtotal"] == 0


def test_add_unknown_product(client, customer):
    _, headers = customer
    r = add(client, headers, "64b000000000000000000000", 1)
    assert r.status_code == 404


def test_add_requires_auth(client, make_product):
    sofa = make_product()
    r = client.post("/api/cart/add", json={"product_id": sofa["id"], "quantity": 1})
    assert r.status_code == 401


def test_cannot_touch_another_users_cart(client, signup, customer, make_product):
    other, other_headers = signup("other@example.com")
    sofa = make_product()
    add(client, other_headers, sofa["id"], 1)
    _, headers = customer
    assert client.get(f"/api/cart/{other['id']}", headers=headers).status_code == 403
    assert add(client, headers, sofa["id"], 1, user_id=other["id"]).status_code == 403


def test_clear_cart(client, customer, make_product):
    user, headers = customer
    sofa = make_product()
    add(client, headers, sofa["id"], 1)
    assert client.delete(f"/api/cart/clear/{user['id']}", headers=headers).status_code == 200
    assert client.get("/api/cart", headers=headers).json()["items"] == []

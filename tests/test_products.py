def test_create_product_defaults(client, vendor, make_product):
    product = make_product()
    assert product["slug"] == "oak-sofa"
    assert product["is_active"] is True
    assert product["is_featured"] is False
    assert product["vendor"] == vendor[0]["id"]


def test_duplicate_names_get_distinct_slugs(make_product):
    first = make_product(name="Oak Sofa")
    second = make_product(name="Oak Sofa")
    third = make_product(name="oak sofa!")
    slugs = {first["slug"], second["slug"], third["slug"]}
    assert len(slugs) == 3
    assert all(s.startswith("oak-sofa") for s in slugs)


def test_create_requires_fields(client, vendor):
    r = client.post("/api/products", json={"name": "Stool"}, headers=vendor[1])
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing fields: main_category, sub_category"


def test_plain_user_cannot_create(client, customer):
    r = client.post("/api/products", json={"name": "A", "main_category": "B", "sub_category": "C"}, headers=customer[1])
    assert r.status_code == 403


def test_guest_cannot_create(client):
    r = client.post("/api/products", json={"name": "A", "main_category": "B", "sub_category": "C"})
    assert r.status_code == 401


def test_admin_can_create(client, admin, make_product):
    product = make_product(headers=admin[1], name="House Brand Table")
    assert product["vendor"] == admin[0]["id"]


def test_multipart_create_with_images(client, vendor):
    r = client.post(
        "/api/products",
        data={
            "name": "Corner Sofa",
            "main_category": "Living Room",
            "sub_category": "Sofas",
            "price": "1200",
            "offer_price": "",
            "colors": "grey, navy",
            "seat": "3,abc,2",
            "is_best_seller": "true",
            "is_active": "false",
            "dimensions": '{"length": "250cm", "width": "180cm"}',
        },
        files=[("images", ("front.png", b"\x89PNG fake", "image/png"))],
        headers=vendor[1],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["colors"] == ["grey", "navy"]
    assert body["seat"] == [3, 2]
    assert body["is_best_seller"] is True
    assert body["is_active"] is False
    assert body["offer_price"] is None
    assert body["dimensions"]["length"] == "250cm"
    assert len(body["images"]) == 1
    assert body["images"][0].startswith("/uploads/")
    assert body["images"][0].endswith(".png")


def test_update_requires_ownership(client, signup, admin, make_product):
    product = make_product()
    _, rival = signup("rival@example.com", role="vendor")
    r = client.put(f"/api/products/{product['id']}", json={"price": 1}, headers=rival)
    assert r.status_code == 403
    assert client.get(f"/api/products/{product['id']}").json()["price"] == 500

    r = client.put(f"/api/products/{product['id']}", json={"price": 450}, headers=admin[1])
    assert r.status_code == 200
    assert r.json()["price"] == 450


def test_update_keeps_unspecified_fields_and_vendor(client, vendor, admin, make_product):
    product = make_product(is_active="false", is_featured=True)
    r = client.put(
        f"/api/products/{product['id']}",
        json={"stock": 3, "vendor": admin[0]["id"]},
        headers=vendor[1],
    )
    assert r.status_code == 200
    body = r.json()
    assert body["stock"] == 3
    assert body["is_active"] is False
    assert body["is_featured"] is True
    assert body["vendor"] == vendor[0]["id"]
    assert body["slug"] == product["slug"]


def test_rename_regenerates_slug(client, vendor, make_product):
    make_product(name="Walnut Desk")
    product = make_product(name="Pine Desk")
    r = client.put(f"/api/products/{product['id']}", json={"name": "Walnut Desk"}, headers=vendor[1])
    assert r.status_code == 200
    assert r.json()["slug"].startswith("walnut-desk-")


def test_update_missing_product(client, vendor):
    r = client.put("/api/products/64b000000000000000000000", json={"price": 1}, headers=vendor[1])
    assert r.status_code == 404


def test_delete_product(client, vendor, customer, make_product):
    product = make_product()
    assert client.delete(f"/api/products/{product['id']}", headers=customer[1]).status_code == 403
    assert client.delete(f"/api/products/{product['id']}", headers=vendor[1]).status_code == 200
    assert client.get(f"/api/products/{product['id']}").status_code == 404


def test_listing_hides_inactive_from_unprivileged(client, admin, customer, make_product):
    make_product(name="Visible Bed")
    hidden = make_product(name="Hidden Bed", is_active=False)

    guest_names = {p["name"] for p in client.get("/api/products").json()}
    assert guest_names == {"Visible Bed"}
    user_names = {p["name"] for p in client.get("/api/products", headers=customer[1]).json()}
    assert user_names == {"Visible Bed"}
    admin_names = {p["name"] for p in client.get("/api/products", headers=admin[1]).json()}
    assert admin_names == {"Visible Bed", "Hidden Bed"}

    assert client.get(f"/api/products/{hidden['id']}").status_code == 404
    assert client.get(f"/api/products/{hidden['id']}", headers=admin[1]).status_code == 200


def test_vendor_sees_own_inactive(client, vendor, make_product):
    make_product(name="Draft Cabinet", is_active=False)
    names = {p["name"] for p in client.get("/api/products", headers=vendor[1]).json()}
    assert "Draft Cabinet" in names


def test_category_filter_is_loose(client, make_product):
    make_product(name="Sofa", main_category="Living-Room")
    make_product(name="Bed", main_category="Bedroom")
    r = client.get("/api/products", params={"main_category": "living room"})
    assert [p["name"] for p in r.json()] == ["Sofa"]
    r = client.get("/api/products", params={"main_category": "LIVING-ROOM"})
    assert [p["name"] for p in r.json()] == ["Sofa"]


def test_facet_filters(client, make_product):
    make_product(name="Plain Chair")
    make_product(name="Featured Chair", is_featured=True)
    make_product(name="Deal Chair", price=100, offer_price=80)
    make_product(name="Top Chair", is_best_seller="true")

    def names(**params):
        return {p["name"] for p in client.get("/api/products", params=params).json()}

    assert names(featured="true") == {"Featured Chair"}
    assert names(has_offer="true") == {"Deal Chair"}
    assert names(best_seller="true") == {"Top Chair"}
    assert "Deal Chair" not in names(has_offer="false")


def test_get_by_slug_includes_vendor(client, vendor, make_product):
    product = make_product(name="Rattan Lamp")
    r = client.get("/api/products/rattan-lamp")
    assert r.status_code == 200
    assert r.json()["id"] == product["id"]
    assert r.json()["vendor_details"]["name"] == "Oak & Co"


def test_malformed_json_body_is_a_bad_request(client, vendor):
    headers = {**vendor[1], "content-type": "application/json"}
    r = client.post("/api/products", content=b'{"name": "Sofa",', headers=headers)
    assert r.status_code == 400
    assert r.json() == {"detail": "Malformed JSON body"}


def test_empty_existing_images_clears_images(client, vendor):
    r = client.post(
        "/api/products",
        data={"name": "Armchair", "main_category": "Living Room", "sub_category": "Chairs"},
        files=[("images", ("seat.png", b"\x89PNG fake", "image/png"))],
        headers=vendor[1],
    )
    product = r.json()
    assert len(product["images"]) == 1

    r = client.put(f"/api/products/{product['id']}", json={"stock": 2}, headers=vendor[1])
    assert r.json()["images"] == product["images"]

    r = client.put(f"/api/products/{product['id']}", json={"existing_images": []}, headers=vendor[1])
    assert r.status_code == 200
    assert r.json()["images"] == []

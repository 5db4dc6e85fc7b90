from apothecary.application.product_service import ProductService, slugify


def test_list_only_active_products(client, products):
    resp = client.get("/products/")
    assert resp.status_code == 200
    assert [p["slug"] for p in resp.json()] == ["ginger-root", "lemon-balm", "vitex-berry"]


def test_filter_by_category_and_search(client, products):
    assert client.get("/products/", params={"category": "Teas"}).json() == []
    found = client.get("/products/", params={"search": "digestive"}).json()
    assert [p["slug"] for p in found] == ["ginger-root"]


def test_categories(client, products):
    assert client.get("/products/categories").json() == ["Tinctures"]


def test_get_by_id_and_slug(client, products):
    product = products["lemon-balm"]
    assert client.get(f"/products/{product.id}").json()["name"] == "Lemon Balm"
    assert client.get("/products/slug/lemon-balm").json()["id"] == product.id
    assert client.get("/products/slug/rose-tea").status_code == 404
    resp = client.get("/products/9999")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Product not found"}


def test_admin_creates_and_updates(client, db, headers):
    payload = {
        "name": "Chamomile Flower",
        "slug": "Chamomile Flower",
        "category": "Tinctures",
        "price": 18.5,
        "stock_quantity": 12,
    }
    assert client.post("/products/", json=payload, headers=headers()).status_code == 403

    admin = headers(sub="admin-1", role="admin")
    resp = client.post("/products/", json=payload, headers=admin)
    assert resp.status_code == 201
    created = resp.json()
    assert created["slug"] == "chamomile-flower"

    assert client.post("/products/", json=payload, headers=admin).status_code == 409

    resp = client.put(f"/products/{created['id']}", json={"price": 21}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["price"] == 21
    assert resp.json()["stock_quantity"] == 12


def test_slugify():
    assert slugify("  St. John's Wort ") == "st-john-s-wort"


def test_service_lists_categories_and_links_slugs(db, products):
    service = ProductService(db)
    assert [p.slug for p in service.list_products(search="balm")] == ["lemon-balm"]
    assert service.categories() == ["Tinctures"]
    linked = service.lookup_by_slugs(["lemon-balm", "no-such-herb"])
    assert linked == {"lemon-balm": {"id": products["lemon-balm"].id, "name": "Lemon Balm"}}

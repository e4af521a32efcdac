"""Tests for the product catalog and reviews."""

import math
from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from products import DEFAULT_LIMIT, MAX_LIMIT, MAX_SKIP, build_query, coerce_positive_int
from tests.factories import bearer, insert_product, insert_user

NEW_PRODUCT = {
    "name": "Pagne Kente",
    "description": "Tissu tissé main",
    "price": 45.5,
    "category": "textile",
    "origin": {"country": "Ghana", "region": "Ashanti"},
    "images": ["https://img.afrizone.com/kente.jpg"],
    "stock": 3,
}


class TestQueryHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [("3", 3), (3, 3), (None, 12), ("abc", 12), ("0", 12), ("-4", 12)],
    )
    def test_coerce_positive_int(self, value, expected):
        assert coerce_positive_int(value, 12) == expected

    def test_coerce_clamps_to_maximum(self):
        assert coerce_positive_int("100000000000000000000", 12, 100) == 100
        assert coerce_positive_int("50", 12, 100) == 50

    def test_category_all_is_not_filtered(self):
        assert build_query("all", None) == {}

    def test_search_is_escaped(self):
        query = build_query(None, "a.b")
        assert query["$or"][0]["name"]["$regex"] == r"a\.b"


class TestListProducts:
    def test_pagination(self, client, mongo):
        for i in range(7):
            insert_product(mongo, name=f"Produit {i}")

        first = client.get("/api/products", params={"limit": "3"}).json()
        last = client.get("/api/products", params={"limit": "3", "page": "3"}).json()

        assert first["total"] == 7
        assert first["pages"] == math.ceil(7 / 3)
        assert len(first["products"]) == 3
        assert last["page"] == 3
        assert len(last["products"]) == 1

    def test_default_page_size(self, client, mongo):
        for i in range(14):
            insert_product(mongo, name=f"Produit {i}")

        body = client.get("/api/products").json()

        assert len(body["products"]) == 12
        assert body["pages"] == 2

    def test_untrusted_page_values_are_coerced(self, client, mongo):
        insert_product(mongo)

        body = client.get("/api/products", params={"page": "x", "limit": "-1"}).json()

        assert body["page"] == 1
        assert body["total"] == 1
        assert len(body["products"]) == 1

    def test_huge_page_and_limit_are_bounded(self, client, mongo):
        for i in range(3):
            insert_product(mongo, name=f"Produit {i}")

        far = client.get("/api/products", params={"page": "100000000000000000000"})
        wide = client.get("/api/products", params={"limit": "100000000000000000000"})

        assert far.status_code == 200
        assert far.json()["products"] == []
        assert (far.json()["page"] - 1) * DEFAULT_LIMIT <= MAX_SKIP
        assert wide.status_code == 200
        assert len(wide.json()["products"]) == 3
        assert wide.json()["pages"] == math.ceil(3 / MAX_LIMIT)

    def test_empty_catalog(self, client):
        body = client.get("/api/products").json()
        assert body == {"products": [], "page": 1, "pages": 0, "total": 0}

    def test_category_filter(self, client, mongo):
        insert_product(mongo, name="Bissap", category="beverage")
        insert_product(mongo, name="Karité", category="beauty")

        only = client.get("/api/products", params={"category": "beauty"}).json()
        every = client.get("/api/products", params={"category": "all"}).json()

        assert [p["name"] for p in only["products"]] == ["Karité"]
        assert every["total"] == 2

    def test_search_name_or_description_case_insensitive(self, client, mongo):
        insert_product(mongo, name="Café Touba", description="Café épicé au poivre de Guinée")
        insert_product(mongo, name="Beurre", description="Beurre de KARITÉ brut")
        insert_product(mongo, name="Masque", description="Sculpture en bois")

        body = client.get("/api/products", params={"search": "karité"}).json()
        names = {p["name"] for p in client.get("/api/products", params={"search": "CAFÉ"}).json()["products"]}

        assert [p["name"] for p in body["products"]] == ["Beurre"]
        assert names == {"Café Touba"}

    def test_sort_by_price(self, client, mongo):
        for price in (20, 5, 12):
            insert_product(mongo, name=f"P{price}", price=price)

        asc = client.get("/api/products", params={"sort": "price_asc"}).json()["products"]
        desc = client.get("/api/products", params={"sort": "price_desc"}).json()["products"]

        assert [p["price"] for p in asc] == [5, 12, 20]
        assert [p["price"] for p in desc] == [20, 12, 5]

    def test_sort_by_rating_and_newest(self, client, mongo):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        insert_product(mongo, name="old", averageRating=4.5, createdAt=base)
        insert_product(mongo, name="new", averageRating=2, createdAt=base + timedelta(days=2))
        insert_product(mongo, name="mid", averageRating=3, createdAt=base + timedelta(days=1))

        by_rating = client.get("/api/products", params={"sort": "rating"}).json()["products"]
        newest = client.get("/api/products", params={"sort": "newest"}).json()["products"]

        assert [p["name"] for p in by_rating] == ["old", "mid", "new"]
        assert [p["name"] for p in newest] == ["new", "mid", "old"]

    def test_unknown_sort_keeps_storage_order(self, client, mongo):
        for name in ("b", "a", "c"):
            insert_product(mongo, name=name)

        products = client.get("/api/products", params={"sort": "bogus"}).json()["products"]

        assert [p["name"] for p in products] == ["b", "a", "c"]


class TestTopProducts:
    def test_top_five_descending_with_stable_ties(self, client, mongo):
        for name, avg in [("a", 3), ("b", 5), ("c", 4), ("d", 4), ("e", 1), ("f", 2), ("g", 4)]:
            insert_product(mongo, name=name, averageRating=avg)

        products = client.get("/api/products/top").json()

        assert [p["name"] for p in products] == ["b", "c", "d", "g", "a"]


class TestProductDetail:
    def test_not_found(self, client):
        assert client.get(f"/api/products/{ObjectId()}").status_code == 404
        assert client.get("/api/products/not-an-id").status_code == 404

    def test_rating_authors_are_resolved(self, client, mongo, customer_id, customer_headers):
        pid = insert_product(mongo)
        client.post(f"/api/products/{pid}/reviews", headers=customer_headers, json={"rating": 4, "comment": "Bon"})

        body = client.get(f"/api/products/{pid}").json()

        author = body["ratings"][0]["user"]
        assert author["id"] == customer_id
        assert author["firstName"] == "Awa"
        assert author["lastName"] == "Diallo"
        assert "email" not in author


class TestAdminProducts:
    def test_create_sets_seller(self, client, admin_id, admin_headers):
        response = client.post("/api/products", headers=admin_headers, json=NEW_PRODUCT)

        assert response.status_code == 201
        body = response.json()
        assert body["seller"] == admin_id
        assert body["averageRating"] == 0
        assert body["ratings"] == []
        assert body["origin"] == {"country": "Ghana", "region": "Ashanti"}

    def test_create_requires_admin(self, client, customer_headers):
        assert client.post("/api/products", headers=customer_headers, json=NEW_PRODUCT).status_code == 403
        assert client.post("/api/products", json=NEW_PRODUCT).status_code == 401

    @pytest.mark.parametrize(
        "override",
        [{"price": -1}, {"stock": -2}, {"category": "electronics"}, {"origin": {"region": "Volta"}}],
    )
    def test_create_validates_fields(self, client, admin_headers, override):
        response = client.post("/api/products", headers=admin_headers, json={**NEW_PRODUCT, **override})
        assert response.status_code == 422

    def test_update_replaces_fields(self, client, mongo, admin_headers):
        pid = insert_product(mongo)

        response = client.put(f"/api/products/{pid}", headers=admin_headers, json=NEW_PRODUCT)

        assert response.status_code == 200
        assert response.json()["name"] == "Pagne Kente"
        assert response.json()["category"] == "textile"

    def test_update_without_all_fields_is_rejected(self, client, mongo, admin_headers):
        pid = insert_product(mongo)
        response = client.put(f"/api/products/{pid}", headers=admin_headers, json={"name": "Only name"})
        assert response.status_code == 422

    def test_update_unknown(self, client, admin_headers):
        response = client.put(f"/api/products/{ObjectId()}", headers=admin_headers, json=NEW_PRODUCT)
        assert response.status_code == 404

    def test_delete(self, client, mongo, admin_headers):
        pid = insert_product(mongo)

        assert client.delete(f"/api/products/{pid}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/products/{pid}", headers=admin_headers).status_code == 404


class TestReviews:
    def test_average_tracks_mean_of_ratings(self, client, mongo):
        pid = insert_product(mongo)
        scores = [5, 2, 4]
        for i, score in enumerate(scores):
            uid = insert_user(mongo, f"reviewer{i}@afrizone.com")
            response = client.post(f"/api/products/{pid}/reviews", headers=bearer(uid), json={"rating": score})
            assert response.status_code == 201

        product = mongo["product"].find_one({"_id": ObjectId(pid)})
        assert len(product["ratings"]) == 3
        assert product["averageRating"] == pytest.approx(sum(scores) / len(scores))

    def test_second_review_rejected(self, client, mongo, customer_headers):
        pid = insert_product(mongo)
        client.post(f"/api/products/{pid}/reviews", headers=customer_headers, json={"rating": 5})

        response = client.post(f"/api/products/{pid}/reviews", headers=customer_headers, json={"rating": 1})

        assert response.status_code == 400
        assert response.json()["detail"] == "Vous avez déjà évalué ce produit"
        assert mongo["product"].find_one({"_id": ObjectId(pid)})["averageRating"] == 5

    def test_review_unknown_product(self, client, customer_headers):
        response = client.post(f"/api/products/{ObjectId()}/reviews", headers=customer_headers, json={"rating": 3})
        assert response.status_code == 404

    def test_rating_out_of_range(self, client, mongo, customer_headers):
        pid = insert_product(mongo)
        response = client.post(f"/api/products/{pid}/reviews", headers=customer_headers, json={"rating": 6})
        assert response.status_code == 422

    def test_review_requires_authentication(self, client, mongo):
        pid = insert_product(mongo)
        assert client.post(f"/api/products/{pid}/reviews", json={"rating": 3}).status_code == 401

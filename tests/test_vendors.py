"""
Vendor accounts, vendor login, dashboard and vendor-owned catalog management.
"""
from decimal import Decimal

from fastapi.testclient import TestClient

from conftest import VENDOR_PASSWORD
from gomart.auth import create_access_token, create_vendor_token
from gomart.models import Product, Vendor


class TestRegister:
    def test_register_vendor(self, test_client: TestClient, db):
        response = test_client.post(
            "/vendors/register",
            data={
                "vendor_name": "Kofi's Kitchen",
                "email": "  Kofi@Example.COM ",
                "password": "jollof-rice-1",
                "phone_number": "0209999999",
                "region": "Ashanti",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "kofi@example.com"
        assert data["user_type"] == "vendor"
        assert data["is_active"] is True
        assert "hashed_password" not in data
        stored = db.query(Vendor).filter(Vendor.email == "kofi@example.com").one()
        assert stored.hashed_password and stored.hashed_password != "jollof-rice-1"

    def test_duplicate_email(self, test_client, vendor):
        response = test_client.post(
            "/vendors/register",
            data={"vendor_name": "Copycat", "email": vendor.email.upper(), "password": "another-pass-1"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "duplicate_email"

    def test_duplicate_phone(self, test_client, vendor):
        response = test_client.post(
            "/vendors/register",
            data={
                "vendor_name": "Copycat",
                "email": "new@gomart.test",
                "password": "another-pass-1",
                "phone_number": vendor.phone_number,
            },
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "duplicate_phone_number"

    def test_short_password(self, test_client):
        response = test_client.post(
            "/vendors/register",
            data={"vendor_name": "Shorty", "email": "s@gomart.test", "password": "short"},
        )

        assert response.status_code == 422


class TestVendorLogin:
    def test_login_by_email(self, test_client, vendor):
        # Act
        response = test_client.post(
            "/auth/vendor-login", json={"identifier": "GREENS@gomart.test", "password": VENDOR_PASSWORD}
        )

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["vendor"]["id"] == vendor.id
        assert data["vendor"]["user_type"] == "vendor"

        me = test_client.get("/vendors/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == vendor.email

    def test_login_by_phone(self, test_client, vendor):
        response = test_client.post(
            "/auth/vendor-login", json={"identifier": " 0244000111 ", "password": VENDOR_PASSWORD}
        )

        assert response.status_code == 200

    def test_wrong_password_is_rejected(self, test_client, vendor):
        response = test_client.post(
            "/auth/vendor-login", json={"identifier": vendor.email, "password": "not-the-password"}
        )

        assert response.status_code == 401

    def test_vendor_without_password_cannot_log_in(self, test_client, make_vendor):
        v = make_vendor(email="nopass@gomart.test", phone_number=None, password=None)

        response = test_client.post("/auth/vendor-login", json={"identifier": v.email, "password": "anything-1"})

        assert response.status_code == 401

    def test_unknown_vendor(self, test_client):
        response = test_client.post(
            "/auth/vendor-login", json={"identifier": "ghost@gomart.test", "password": "whatever-1"}
        )

        assert response.status_code == 401

    def test_inactive_vendor(self, test_client, make_vendor):
        v = make_vendor(email="sleepy@gomart.test", phone_number=None, is_active=False)

        response = test_client.post("/auth/vendor-login", json={"identifier": v.email, "password": VENDOR_PASSWORD})

        assert response.status_code == 403

    def test_missing_fields(self, test_client):
        assert test_client.post("/auth/vendor-login", json={"identifier": "a@b.c"}).status_code == 400
        assert test_client.post("/auth/vendor-login", json={"password": "x"}).status_code == 400
        assert test_client.post("/auth/vendor-login", json={}).status_code == 400


class TestTokens:
    def test_garbage_token(self, test_client):
        response = test_client.get("/vendors/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_non_vendor_token(self, test_client, vendor):
        token = create_access_token({"sub": str(vendor.id)})

        response = test_client.get("/vendors/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_token_of_deactivated_vendor(self, test_client, db, vendor):
        token = create_vendor_token(vendor)
        vendor.is_active = False
        db.commit()

        response = test_client.get("/vendors/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403


class TestDashboard:
    def test_counts(self, test_client, db, auth_headers, vendor, make_vendor, make_product, new_cart):
        # Arrange
        rice = make_product(stock=10, name="Rice")
        make_product(stock=4, name="Beans")
        make_product(stock=6, name="Old Stock", is_active=False)
        other = make_vendor(email="other@gomart.test", phone_number="0500000000")
        make_product(stock=50, name="Not Mine", owner=other)
        vendor.rating = 4.5
        db.commit()
        cart_id = new_cart()
        test_client.post(f"/carts/{cart_id}/items", json={"product_id": rice.id, "quantity": 3})

        # Act
        response = test_client.get("/vendors/me/dashboard", headers=auth_headers)

        # Assert
        assert response.status_code == 200
        assert response.json() == {
            "vendor_id": vendor.id,
            "total_products": 3,
            "active_products": 2,
            "total_stock_units": 7 + 4 + 6,
            "reserved_units": 3,
            "average_rating": 4.5,
        }

    def test_empty_dashboard(self, test_client, auth_headers, vendor):
        data = test_client.get("/vendors/me/dashboard", headers=auth_headers).json()

        assert data["total_products"] == 0
        assert data["reserved_units"] == 0


class TestCatalog:
    def test_create_and_list_products(self, test_client, auth_headers, category, vendor):
        created = test_client.post(
            "/products/",
            data={
                "product_name": " Kente Scarf ",
                "price": "45.50",
                "stock_quantity": "12",
                "category_id": str(category.id),
            },
            headers=auth_headers,
        )

        assert created.status_code == 201
        body = created.json()
        assert body["product_name"] == "Kente Scarf"
        assert Decimal(body["price"]) == Decimal("45.50")
        assert body["vendor_id"] == vendor.id
        assert body["category"]["category_name"] == "Groceries"

        listed = test_client.get("/products/", params={"categoryId": category.id}).json()
        assert [p["id"] for p in listed] == [body["id"]]
        assert test_client.get("/products/", params={"search": "kente"}).json()[0]["id"] == body["id"]
        assert test_client.get(f"/products/{body['id']}").json()["vendor"]["vendor_name"] == "Fresh Greens"

    def test_create_with_unknown_category(self, test_client, auth_headers):
        response = test_client.post(
            "/products/",
            data={"product_name": "Mystery", "price": "1.00", "category_id": "999"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "category_not_found"

    def test_filter_by_vendor(self, test_client, make_vendor, make_product, vendor):
        mine = make_product(name="Mine")
        other = make_vendor(email="other@gomart.test", phone_number="0500000000")
        make_product(name="Theirs", owner=other)

        listed = test_client.get("/products/", params={"vendorId": vendor.id}).json()

        assert [p["id"] for p in listed] == [mine.id]

    def test_public_listing_hides_deactivated_products(self, test_client, auth_headers, make_product, vendor):
        # Arrange
        live = make_product(name="On Shelf")
        hidden = make_product(name="Hidden", is_active=False)

        # Act
        public = test_client.get("/products/").json()
        by_vendor = test_client.get("/products/", params={"vendorId": vendor.id}).json()
        own = test_client.get("/vendors/me/products", headers=auth_headers)

        # Assert
        assert [p["id"] for p in public] == [live.id]
        assert [p["id"] for p in by_vendor] == [live.id]
        assert own.status_code == 200
        assert [p["id"] for p in own.json()] == [live.id, hidden.id]

    def test_own_products_need_a_token(self, test_client):
        assert test_client.get("/vendors/me/products").status_code in (401, 403)

    def test_missing_product(self, test_client):
        assert test_client.get("/products/31337").status_code == 404

    def test_update_does_not_touch_stock(self, test_client, auth_headers, make_product, stock_of):
        product = make_product(stock=7)

        response = test_client.patch(
            f"/products/{product.id}",
            data={"product_name": "Renamed", "is_active": "false"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["product_name"] == "Renamed"
        assert response.json()["is_active"] is False
        assert stock_of(product.id) == 7

    def test_cannot_edit_someone_elses_product(self, test_client, auth_headers, make_vendor, make_product):
        other = make_vendor(email="other@gomart.test", phone_number="0500000000")
        product = make_product(owner=other)

        response = test_client.patch(f"/products/{product.id}", data={"product_name": "Mine now"}, headers=auth_headers)

        assert response.status_code == 403

    def test_delete_product(self, test_client, db, auth_headers, make_product):
        product = make_product(stock=3)

        response = test_client.delete(f"/products/{product.id}", headers=auth_headers)

        assert response.status_code == 200
        assert db.query(Product).filter(Product.id == product.id).count() == 0

    def test_cannot_delete_reserved_product(self, test_client, auth_headers, make_product, new_cart, stock_of):
        product = make_product(stock=3)
        cart_id = new_cart()
        test_client.post(f"/carts/{cart_id}/items", json={"product_id": product.id, "quantity": 1})

        response = test_client.delete(f"/products/{product.id}", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "product_reserved"
        assert stock_of(product.id) == 2

    def test_categories(self, test_client, auth_headers):
        created = test_client.post(
            "/categories/", json={"category_name": "Beverages", "description": "Drinks"}, headers=auth_headers
        )
        duplicate = test_client.post("/categories/", json={"category_name": "beverages"}, headers=auth_headers)

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert [c["category_name"] for c in test_client.get("/categories/").json()] == ["Beverages"]


def test_health(test_client):
    assert test_client.get("/health").json() == {"status": "healthy", "service": "gomart"}

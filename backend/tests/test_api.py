"""
End-to-end API tests.

Drives the JSON API the way the front end does: log in, manage stock,
raise invoices, take payments, read the dashboard. Also pins the mapping
from domain errors to HTTP status codes.
"""

import pytest

from conftest import PASSWORD, auth_headers


# =============================================================================
# AUTH
# =============================================================================


class TestAuthFlow:
    def test_login_me_logout(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "Admin"
        assert all(resp.json["permissions"].values())
        headers = auth_headers(resp.json["token"])

        assert client.get("/api/auth/me", headers=headers).status_code == 200
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_sessions_and_logout_everywhere(self, client, admin_user):
        tokens = [
            client.post("/api/auth/login", json={"username": "admin", "password": PASSWORD}).json["token"]
            for _ in range(2)
        ]
        headers = auth_headers(tokens[1])

        sessions = client.get("/api/auth/sessions", headers=headers).json["items"]
        assert len(sessions) == 2
        assert [s["current"] for s in sessions].count(True) == 1

        resp = client.post("/api/auth/logout-all", headers=headers)
        assert resp.json["revoked"] == 2
        for token in tokens:
            assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_wrong_password(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json["type"] == "authentication_error"

    def test_missing_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={"username": "admin"}).status_code == 400

    def test_update_password_ends_session(self, client, admin_user):
        token = client.post("/api/auth/login", json={"username": "admin", "password": PASSWORD}).json["token"]
        headers = auth_headers(token)

        resp = client.put("/api/auth/update-password", headers=headers,
                          json={"current_password": "wrong", "new_password": "NewPassword1"})
        assert resp.status_code == 401

        resp = client.put("/api/auth/update-password", headers=headers,
                          json={"current_password": PASSWORD, "new_password": "NewPassword1"})
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

        resp = client.post("/api/auth/login", json={"username": "admin", "password": "NewPassword1"})
        assert resp.status_code == 200


# =============================================================================
# ITEMS
# =============================================================================


class TestItems:
    def test_create_and_list(self, client, admin_headers, items):
        resp = client.post("/api/items", headers=admin_headers, json={"item_name": "Garlic", "shop_quantity": 4})
        assert resp.status_code == 201
        assert resp.json["item_id"] == 10003
        assert resp.json["shop_quantity"] == 4

        listing = client.get("/api/items?search=gar", headers=admin_headers).json
        assert [i["item_name"] for i in listing["items"]] == ["Garlic"]

    def test_duplicate_name_is_conflict(self, client, admin_headers, items):
        resp = client.post("/api/items", headers=admin_headers, json={"item_name": "tomatoes"})
        assert resp.status_code == 409
        assert resp.json["type"] == "conflict"

    def test_missing_name_is_validation_error(self, client, admin_headers, db_session):
        resp = client.post("/api/items", headers=admin_headers, json={})
        assert resp.status_code == 400
        assert resp.json["type"] == "validation_error"
        assert resp.json["field"] == "item_name"

    def test_unknown_item_is_404(self, client, admin_headers, db_session):
        resp = client.get("/api/items/99999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json["type"] == "not_found"

    def test_transfer_round_trip(self, client, admin_headers, items):
        resp = client.post("/api/items/10002/transfer-to-shop", headers=admin_headers,
                           json={"quantity": 5, "net_weight": 50})
        assert resp.status_code == 200
        assert resp.json["shop_quantity"] == 10
        assert resp.json["cold_quantity"] == 15
        assert resp.json["cold_net_weight"] == 150

    def test_transfer_beyond_stock_is_409(self, client, admin_headers, items):
        resp = client.post("/api/items/10001/transfer-to-cold", headers=admin_headers, json={"quantity": 11})
        assert resp.status_code == 409
        body = resp.json
        assert body["type"] == "insufficient_stock"
        assert body["shortfalls"][0]["item_id"] == 10001
        assert body["shortfalls"][0]["bucket"] == "shop"
        assert body["shortfalls"][0]["field"] == "quantity"

        item = client.get("/api/items/10001", headers=admin_headers).json
        assert item["shop_quantity"] == 10
        assert item["cold_quantity"] == 0

    def test_adjust_requires_bucket(self, client, admin_headers, items):
        resp = client.post("/api/items/10001/adjust", headers=admin_headers, json={"quantity": -1})
        assert resp.status_code == 400
        assert resp.json["field"] == "bucket"

        resp = client.post("/api/items/10001/adjust", headers=admin_headers,
                           json={"bucket": "shop", "quantity": -2, "net_weight": -20})
        assert resp.status_code == 200
        assert resp.json["shop_quantity"] == 8


# =============================================================================
# INVOICES AND PAYMENTS
# =============================================================================


def vendor_payload(parties, quantity=5, net_weight=50, price=20):
    return {
        "vendor_id": parties["vendor"].id,
        "invoice_date": "2024-03-01",
        "items": [{"item_id": 10001, "quantity": quantity, "net_weight": net_weight, "purchase_price": price}],
    }


class TestInvoices:
    def test_vendor_invoice_lifecycle(self, client, admin_headers, items, parties):
        resp = client.post("/api/invoices/vendor", headers=admin_headers, json=vendor_payload(parties))
        assert resp.status_code == 201
        invoice = resp.json
        assert invoice["invoice_number"] == "VIN0001"
        assert invoice["total"] == 1000
        assert invoice["items"][0]["purchase_price"] == 20
        assert client.get("/api/items/10001", headers=admin_headers).json["shop_quantity"] == 15

        path = f"/api/invoices/vendor/{invoice['id']}"
        resp = client.put(path, headers=admin_headers, json=vendor_payload(parties, quantity=2, net_weight=50))
        assert resp.status_code == 200
        assert client.get("/api/items/10001", headers=admin_headers).json["shop_quantity"] == 12

        assert client.delete(path, headers=admin_headers).status_code == 200
        assert client.get(path, headers=admin_headers).status_code == 404
        assert client.get("/api/items/10001", headers=admin_headers).json["shop_quantity"] == 10

    def test_wrong_kind_is_404(self, client, admin_headers, items, parties):
        invoice_id = client.post("/api/invoices/vendor", headers=admin_headers, json=vendor_payload(parties)).json["id"]
        assert client.get(f"/api/invoices/customer/{invoice_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/invoices/customer/{invoice_id}", headers=admin_headers).status_code == 404
        assert client.get(f"/api/invoices/vendor/{invoice_id}", headers=admin_headers).status_code == 200

    def test_unknown_kind_is_404(self, client, admin_headers, db_session):
        assert client.get("/api/invoices/supplier", headers=admin_headers).status_code == 404

    def test_oversell_is_409_and_saves_nothing(self, client, admin_headers, items, parties):
        resp = client.post("/api/invoices/customer", headers=admin_headers, json={
            "customer_id": parties["customer"].id,
            "items": [{"item_id": 10001, "quantity": 11, "net_weight": 10, "selling_price": 10}],
        })
        assert resp.status_code == 409
        assert resp.json["type"] == "insufficient_stock"
        assert client.get("/api/invoices/customer", headers=admin_headers).json["count"] == 0

    def test_invalid_line_names_the_field(self, client, admin_headers, items, parties):
        resp = client.post("/api/invoices/customer", headers=admin_headers, json={
            "customer_id": parties["customer"].id,
            "items": [{"item_id": 10001, "quantity": "a few", "net_weight": 1, "selling_price": 10}],
        })
        assert resp.status_code == 400
        assert resp.json["type"] == "validation_error"
        assert "quantity" in resp.json["field"]

    def test_due_date_before_invoice_date(self, client, admin_headers, items, parties):
        payload = vendor_payload(parties)
        payload["due_date"] = "2024-02-01"
        resp = client.post("/api/invoices/vendor", headers=admin_headers, json=payload)
        assert resp.status_code == 400
        assert resp.json["type"] == "invalid_date_range"

    def test_payments(self, client, admin_headers, items, parties):
        invoice_id = client.post("/api/invoices/vendor", headers=admin_headers, json=vendor_payload(parties)).json["id"]
        path = f"/api/invoices/vendor/{invoice_id}/payments"

        resp = client.post(path, headers=admin_headers, json={"amount": 400, "payment_method": "cheque"})
        assert resp.status_code == 201
        assert resp.json["summary"]["status"] == "partial"
        assert resp.json["summary"]["remaining_amount"] == 600

        resp = client.post(path, headers=admin_headers, json={"amount": 601})
        assert resp.status_code == 400
        assert resp.json["type"] == "invalid_payment_amount"

        client.post(path, headers=admin_headers, json={"amount": 600})
        history = client.get(path, headers=admin_headers).json
        assert [p["amount"] for p in history["items"]] == [400, 600]
        assert history["summary"]["status"] == "paid"

        listing = client.get("/api/invoices/vendor?status=paid", headers=admin_headers).json
        assert listing["count"] == 1

    def test_commissioner_sheet(self, client, admin_headers, parties):
        resp = client.post("/api/invoices/commissioner", headers=admin_headers, json={
            "commissioner_id": parties["commissioner"].id,
            "commissioner_percentage": 5,
            "buyer_name": "Bilal",
            "items": [{"item_name": "Kinnow", "net_weight": 400, "sale_price": 50}],
        })
        assert resp.status_code == 201
        sheet = resp.json
        assert sheet["invoice_number"] == "CMS0001"
        assert sheet["total"] == 20000
        assert sheet["commissioner_amount"] == 1000
        assert sheet["amount_due"] == 1000

        resp = client.post(f"/api/invoices/commissioner/{sheet['id']}/payments", headers=admin_headers,
                           json={"amount": 1000, "payment_method": "bank"})
        assert resp.status_code == 201
        assert resp.json["summary"]["status"] == "paid"

    def test_preview_saves_nothing(self, client, admin_headers, items, parties):
        resp = client.post("/api/invoices/vendor/preview", headers=admin_headers, json=vendor_payload(parties))
        assert resp.status_code == 200
        assert resp.json["total"] == 1000
        assert client.get("/api/invoices/vendor", headers=admin_headers).json["count"] == 0

    def test_search_requires_term(self, client, admin_headers, db_session):
        resp = client.get("/api/invoices/vendor/search", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "q"


# =============================================================================
# PARTIES AND BROKERS
# =============================================================================


class TestParties:
    @pytest.mark.parametrize("collection", ["vendors", "customers", "commissioners"])
    def test_crud(self, client, admin_headers, db_session, collection):
        resp = client.post(f"/api/{collection}", headers=admin_headers,
                           json={"name": "Noor Traders", "phone": "0321-5550000", "city": "Sahiwal"})
        assert resp.status_code == 201
        party_id = resp.json["id"]

        resp = client.put(f"/api/{collection}/{party_id}", headers=admin_headers, json={"city": "Okara"})
        assert resp.json["city"] == "Okara"
        assert resp.json["name"] == "Noor Traders"

        listing = client.get(f"/api/{collection}?search=okara", headers=admin_headers).json
        assert listing["count"] == 1

        assert client.delete(f"/api/{collection}/{party_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/{collection}/{party_id}", headers=admin_headers).status_code == 404

    def test_party_with_invoices_cannot_be_deleted(self, client, admin_headers, items, parties):
        client.post("/api/invoices/vendor", headers=admin_headers, json=vendor_payload(parties))
        vendor_id = parties["vendor"].id

        assert client.delete(f"/api/vendors/{vendor_id}", headers=admin_headers).status_code == 409
        invoices = client.get(f"/api/vendors/{vendor_id}/invoices", headers=admin_headers).json["items"]
        assert [i["invoice_number"] for i in invoices] == ["VIN0001"]

    def test_nameless_party(self, client, admin_headers, db_session):
        resp = client.post("/api/customers", headers=admin_headers, json={"city": "Lahore"})
        assert resp.status_code == 400
        assert resp.json["field"] == "name"


class TestBrokers:
    def test_commission_and_payment(self, client, admin_headers, parties):
        broker_id = parties["broker"].id
        client.post("/api/invoices/customer", headers=admin_headers, json={
            "customer_id": parties["customer"].id,
            "broker_id": broker_id,
            "broker_commission_percentage": 2,
            "items": [{"item_name": "Mixed produce", "net_weight": 100, "selling_price": 50}],
        })

        broker = client.get(f"/api/brokers/{broker_id}", headers=admin_headers).json
        assert broker["total_commission"] == 100
        assert broker["status"] == "unpaid"

        resp = client.post(f"/api/brokers/{broker_id}/payments", headers=admin_headers, json={"amount": 30})
        assert resp.status_code == 201
        assert resp.json["summary"]["total_remaining"] == 70

        resp = client.post(f"/api/brokers/{broker_id}/payments", headers=admin_headers, json={"amount": 71})
        assert resp.status_code == 400

        assert client.delete(f"/api/brokers/{broker_id}", headers=admin_headers).status_code == 409

    def test_create_and_rename(self, client, admin_headers, db_session):
        resp = client.post("/api/brokers", headers=admin_headers, json={"broker_name": "Saleem", "city": "Okara"})
        assert resp.status_code == 201
        assert resp.json["total_commission"] == 0

        resp = client.put(f"/api/brokers/{resp.json['id']}", headers=admin_headers, json={"name": "Saleem Ahmed"})
        assert resp.json["broker_name"] == "Saleem Ahmed"


# =============================================================================
# BALANCE, DASHBOARD, REPORTS
# =============================================================================


class TestBalanceAndReports:
    def test_balance_sheet(self, client, admin_headers, db_session):
        resp = client.post("/api/balance", headers=admin_headers,
                           json={"amount": 5000, "date": "2024-03-01", "remarks": "Opening cash", "type": "addition"})
        assert resp.status_code == 201
        assert resp.json["total_balance"] == 5000
        assert resp.json["entry"]["created_by"] == "admin"

        client.post("/api/balance", headers=admin_headers,
                    json={"amount": 800, "date": "2024-03-02", "remarks": "Rent", "type": "subtraction"})
        assert client.get("/api/balance/total", headers=admin_headers).json["total_balance"] == 4200

        resp = client.post("/api/balance", headers=admin_headers,
                           json={"amount": 10, "remarks": "Typo", "type": "withdrawal"})
        assert resp.status_code == 400
        assert resp.json["field"] == "type"

        listing = client.get("/api/balance?remarks=rent", headers=admin_headers).json
        assert [e["amount"] for e in listing["entries"]] == [800]

    def test_dashboard_and_supply(self, client, admin_headers, items, parties):
        invoice_id = client.post("/api/invoices/vendor", headers=admin_headers, json=vendor_payload(parties)).json["id"]
        client.post(f"/api/invoices/vendor/{invoice_id}/payments", headers=admin_headers, json={"amount": 300})
        client.post("/api/balance", headers=admin_headers,
                    json={"amount": 2000, "remarks": "Opening cash", "type": "addition"})

        data = client.get("/api/dashboard", headers=admin_headers).json
        assert data["vendors"]["total_paid"] == 300
        assert data["vendors"]["total_remaining"] == 700
        assert data["customers"]["total_remaining"] == 0
        assert data["paid_out"] == 300
        assert data["circulating_supply"] == 1700

        supply = client.get("/api/reports/circulating-supply", headers=admin_headers).json
        assert supply["circulating_supply"] == 1700

    def test_sales_report(self, client, admin_headers, items, parties):
        for item_id, net_weight in ((10001, 10), (10002, 30)):
            client.post("/api/invoices/customer", headers=admin_headers, json={
                "customer_id": parties["customer"].id,
                "invoice_date": "2024-03-10",
                "items": [{"item_id": item_id, "quantity": 1, "net_weight": net_weight, "selling_price": 10}],
            })

        report = client.get("/api/reports/sales?date_from=2024-03-01&date_to=2024-03-31",
                            headers=admin_headers).json
        assert report["revenue_from_items"] == 400
        assert report["total_sales"] == 400
        assert [i["item_name"] for i in report["top_items"]] == ["Onions", "Tomatoes"]
        assert [i["item_name"] for i in report["least_items"]] == ["Tomatoes", "Onions"]

        empty = client.get("/api/reports/sales?date_from=2024-04-01", headers=admin_headers).json
        assert empty["total_sales"] == 0

        resp = client.get("/api/reports/sales?date_from=2024-04-01&date_to=2024-03-01", headers=admin_headers)
        assert resp.status_code == 400

    def test_activity_log(self, client, admin_headers, items):
        client.post("/api/items/10001/transfer-to-cold", headers=admin_headers, json={"quantity": 1})

        log = client.get("/api/activity-log?action=inventory.transferred", headers=admin_headers).json
        assert log["pagination"]["total"] == 1
        assert log["entries"][0]["username"] == "admin"


# =============================================================================
# USERS
# =============================================================================


class TestUsers:
    def test_admin_manages_workers(self, client, admin_headers, db_session):
        resp = client.post("/api/users", headers=admin_headers, json={
            "username": "clerk",
            "fullname": "Shop Clerk",
            "password": "longenough",
            "permissions": {"inventory": True},
        })
        assert resp.status_code == 201
        clerk = resp.json["user"]
        assert clerk["permissions"]["inventory"] is True
        assert clerk["permissions"]["inventory.manage"] is False

        login = client.post("/api/auth/login", json={"username": "clerk", "password": "longenough"})
        clerk_headers = auth_headers(login.json["token"])
        assert client.get("/api/items", headers=clerk_headers).status_code == 200

        resp = client.put(f"/api/users/{clerk['id']}", headers=admin_headers, json={"is_active": False})
        assert resp.status_code == 200
        assert client.get("/api/items", headers=clerk_headers).status_code == 401

        assert client.delete(f"/api/users/{clerk['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/users/{clerk['id']}", headers=admin_headers).status_code == 404

    def test_duplicate_username(self, client, admin_headers):
        resp = client.post("/api/users", headers=admin_headers,
                           json={"username": "admin", "fullname": "Again", "password": "longenough"})
        assert resp.status_code == 409

    def test_capability_catalogue(self, client, admin_headers):
        keys = {c["key"] for c in client.get("/api/users/capabilities", headers=admin_headers).json["items"]}
        assert {"vendors.invoices", "customers.generateInvoice", "inventory.manage"} <= keys

    def test_body_must_be_object(self, client, admin_headers):
        resp = client.post("/api/users", headers=admin_headers, json=["not", "an", "object"])
        assert resp.status_code == 400
        assert resp.json["field"] == "body"

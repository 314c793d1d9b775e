import unittest
from datetime import date

from fastapi.testclient import TestClient

from backend.db import get_connection
from backend.main import app
from backend.tests.factories import (
    DEFAULT_PASSWORD,
    add_admin,
    add_category,
    add_owner,
    add_transaction,
    add_user,
    grant,
    make_engine,
)


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()

        def override_connection():
            with self.engine.begin() as conn:
                yield conn

        app.dependency_overrides[get_connection] = override_connection
        self.client = TestClient(app)

        with self.engine.begin() as conn:
            self.admin = add_admin(conn, "admin@example.com")
            self.user = add_user(conn, "user@example.com", name="Regular User")
            self.it = add_owner(conn, "IT Division", "IT")
            self.hr = add_owner(conn, "HR Division", "HR")
            self.travel = add_category(conn, "Travel")
            grant(conn, self.user.user_id, self.it)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.client.close()
        self.engine.dispose()

    def _login(self, email: str) -> str:
        response = self.client.post(
            "/auth/login", json={"email": email, "password": DEFAULT_PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["data"]["token"]

    def _bearer(self, email: str) -> dict:
        token = self._login(email)
        # keep the cookie out of the way so the header is what authenticates
        self.client.cookies.clear()
        return {"Authorization": f"Bearer {token}"}

    def test_health_and_root(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})
        self.assertIn("version", self.client.get("/").json())

    def test_login_sets_cookie_and_me_uses_it(self) -> None:
        response = self.client.post(
            "/auth/login", json={"email": "ADMIN@example.com", "password": DEFAULT_PASSWORD}
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["user"]["role"], "SUPER_ADMIN")
        self.assertNotIn("password_hash", body["data"]["user"])
        self.assertIn("token", response.cookies)

        me = self.client.get("/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["email"], "admin@example.com")

        self.client.post("/auth/logout")
        self.assertEqual(self.client.get("/auth/me").status_code, 401)

    def test_wrong_password_is_unauthorized(self) -> None:
        response = self.client.post(
            "/auth/login", json={"email": "admin@example.com", "password": "not-it-at-all"}
        )

        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "UNAUTHORIZED")
        self.assertEqual(body["error"]["message"], "Invalid credentials.")

    def test_unauthenticated_request_is_rejected(self) -> None:
        response = self.client.get("/budget-owners", headers={"x-request-id": "req-42"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers["x-request-id"], "req-42")
        self.assertEqual(response.json()["meta"]["request_id"], "req-42")

    def test_budget_owner_listing_is_scoped(self) -> None:
        headers = self._bearer("user@example.com")

        response = self.client.get("/budget-owners", headers=headers)

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual([item["code"] for item in data["items"]], ["IT"])
        self.assertEqual(data["pagination"]["total"], 1)
        hidden = self.client.get(f"/budget-owners/{self.hr}", headers=headers)
        self.assertEqual(hidden.status_code, 404)
        self.assertEqual(hidden.json()["error"]["code"], "NOT_FOUND")

    def test_regular_user_cannot_create_budget_owner(self) -> None:
        headers = self._bearer("user@example.com")

        response = self.client.post("/budget-owners", json={"name": "Legal"}, headers=headers)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_payload_validation_errors_are_400(self) -> None:
        headers = self._bearer("admin@example.com")

        blank = self.client.post("/budget-owners", json={"name": "   "}, headers=headers)
        missing = self.client.post("/budgets", json={"year": 2024}, headers=headers)
        bad_page = self.client.get("/categories?limit=500", headers=headers)

        for response in (blank, missing, bad_page):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_budget_lifecycle(self) -> None:
        headers = self._bearer("admin@example.com")
        with self.engine.begin() as conn:
            add_transaction(conn, self.it, self.travel, self.admin.user_id, "250", date(2024, 5, 1))

        created = self.client.post(
            "/budgets",
            json={"budget_owner_id": self.it, "year": 2024, "amount_planned": "1000"},
            headers=headers,
        )
        self.assertEqual(created.status_code, 201)
        budget = created.json()["data"]
        self.assertEqual(budget["amount_spent"], "250.00")
        self.assertEqual(budget["amount_remaining"], "750.00")
        self.assertEqual(budget["utilization_percentage"], "25.00")

        duplicate = self.client.post(
            "/budgets",
            json={"budget_owner_id": self.it, "year": 2024, "amount_planned": "500"},
            headers=headers,
        )
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["error"]["code"], "CONFLICT")

        revised = self.client.patch(
            f"/budgets/{budget['id']}", json={"amount_revised": "500"}, headers=headers
        )
        self.assertEqual(revised.json()["data"]["utilization_percentage"], "50.00")

        summary = self.client.get("/budgets/summary?year=2024", headers=headers)
        self.assertEqual(summary.json()["data"]["budget_count"], 1)

        deleted = self.client.delete(f"/budgets/{budget['id']}", headers=headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(
            self.client.get(f"/budgets/{budget['id']}", headers=headers).status_code, 404
        )

    def test_transaction_ownership_over_http(self) -> None:
        with self.engine.begin() as conn:
            other = add_user(conn, "other@example.com", name="Other")
            grant(conn, other.user_id, self.it)

        user_headers = self._bearer("user@example.com")
        created = self.client.post(
            "/transactions",
            json={
                "budget_owner_id": self.it,
                "category_id": self.travel,
                "date": "2024-06-01",
                "amount": "42.50",
                "description": "Taxi",
            },
            headers=user_headers,
        )
        self.assertEqual(created.status_code, 201)
        transaction = created.json()["data"]
        self.assertEqual(transaction["created_by_name"], "Regular User")
        self.assertEqual(transaction["amount"], "42.50")

        other_headers = self._bearer("other@example.com")
        forbidden = self.client.patch(
            f"/transactions/{transaction['id']}",
            json={"description": "Changed"},
            headers=other_headers,
        )
        self.assertEqual(forbidden.status_code, 403)

        listed = self.client.get("/transactions?year=2024", headers=other_headers)
        self.assertEqual(listed.json()["data"]["pagination"]["total"], 1)

        conflicting = self.client.get(
            f"/transactions?category_id={self.travel}&category_ids={self.travel}",
            headers=other_headers,
        )
        self.assertEqual(conflicting.status_code, 400)

    def test_category_delete_blocked_over_http(self) -> None:
        headers = self._bearer("admin@example.com")
        with self.engine.begin() as conn:
            add_transaction(conn, self.it, self.travel, self.admin.user_id, "10", date(2024, 1, 1))

        response = self.client.delete(f"/categories/{self.travel}", headers=headers)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")


    def test_sub_cent_amounts_are_rejected(self) -> None:
        headers = self._bearer("admin@example.com")

        budget = self.client.post(
            "/budgets",
            json={"budget_owner_id": self.it, "year": 2024, "amount_planned": "0.001"},
            headers=headers,
        )
        transaction = self.client.post(
            "/transactions",
            json={
                "budget_owner_id": self.it,
                "category_id": self.travel,
                "date": "2024-06-01",
                "amount": "0.004",
                "description": "Rounding",
            },
            headers=headers,
        )

        for response in (budget, transaction):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        listed = self.client.get("/transactions", headers=headers)
        self.assertEqual(listed.json()["data"]["pagination"]["total"], 0)

    def test_year_bounds_over_http(self) -> None:
        headers = self._bearer("admin@example.com")

        too_early = self.client.post(
            "/budgets",
            json={"budget_owner_id": self.it, "year": 1999, "amount_planned": "10"},
            headers=headers,
        )
        earliest = self.client.post(
            "/budgets",
            json={"budget_owner_id": self.it, "year": 2000, "amount_planned": "10"},
            headers=headers,
        )

        self.assertEqual(too_early.status_code, 400)
        self.assertEqual(earliest.status_code, 201)


class UnexpectedErrorTests(unittest.TestCase):
    def setUp(self) -> None:
        def broken_connection():
            raise RuntimeError("database unavailable")

        app.dependency_overrides[get_connection] = broken_connection
        self.client = TestClient(app, raise_server_exceptions=False)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.client.close()

    def test_internal_error_keeps_request_id(self) -> None:
        response = self.client.get("/categories", headers={"x-request-id": "req-500"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.headers["x-request-id"], "req-500")
        body = response.json()
        self.assertEqual(body["error"]["code"], "INTERNAL_ERROR")
        self.assertEqual(body["meta"]["request_id"], "req-500")


if __name__ == "__main__":
    unittest.main()

import os
import tempfile
import unittest

from fastapi.testclient import TestClient

from paygate.api.deps import get_store, get_store_scope
from paygate.app import create_app
from paygate.clients.processor_client import ProcessorClient

from tests.fakes import FakeProcessor, InMemoryUserStore, StoreScope, make_settings


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._log_dir = tempfile.TemporaryDirectory()
        os.environ["LOG_DIR"] = self._log_dir.name
        self.settings = make_settings()
        self.fake = FakeProcessor()
        self.processor = ProcessorClient(self.settings, http_client=self.fake.client())
        self.store = InMemoryUserStore()
        self.app = create_app(self.settings, processor=self.processor)
        self.scope = StoreScope(self.store)
        self.app.dependency_overrides[get_store] = lambda: self.store
        self.app.dependency_overrides[get_store_scope] = lambda: self.scope
        self.client = TestClient(self.app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        os.environ.pop("LOG_DIR", None)
        self._log_dir.cleanup()

    def register(self, name="A", email="a@x.com", password="password123"):
        return self.client.post("/auth/register", json={"name": name, "email": email, "password": password})


class HealthTests(ApiTestCase):
    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "healthy"})

    def test_security_headers(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.headers["X-Content-Type-Options"], "nosniff")
        self.assertEqual(resp.headers["X-Frame-Options"], "DENY")
        self.assertEqual(resp.headers["Referrer-Policy"], "no-referrer")


class RegisterEndpointTests(ApiTestCase):
    def test_register(self):
        self.fake.reference_override = "REF1"
        resp = self.register()
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["accountReference"], "REF1")
        self.assertEqual(body["user"]["accountReference"], "REF1")
        self.assertEqual(body["user"]["email"], "a@x.com")
        self.assertEqual(body["user"]["bankDetails"]["accountNumber"], "5000000001")
        self.assertNotIn("passwordHash", body["user"])
        self.assertTrue(body["token"])

    def test_register_duplicate_email(self):
        self.register()
        resp = self.register()
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "CONFLICT")

    def test_register_missing_field(self):
        resp = self.client.post("/auth/register", json={"name": "A"})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["error"], "VALIDATION_ERROR")

    def test_register_processor_failure_then_open_account(self):
        self.fake.create_status = 503
        resp = self.register()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "UPSTREAM_ACCOUNT_FAILED")
        user_id = resp.json()["user_id"]

        # registering again is refused; the id from the failure is the way back
        self.assertEqual(self.register().status_code, 409)

        self.fake.create_status = None
        resp = self.client.post(f"/users/{user_id}/reserved-account")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["created"])
        self.assertEqual(resp.json()["accountReference"], user_id)

        resp = self.client.post(f"/users/{user_id}/reserved-account")
        self.assertFalse(resp.json()["created"])

    def test_validation_failure_carries_no_user_id(self):
        resp = self.register(password="short")
        self.assertEqual(resp.status_code, 422)
        self.assertNotIn("user_id", resp.json())

    def test_each_workflow_gets_its_own_store_scope(self):
        self.register()
        self.assertEqual(self.scope.opened, 1)
        self.assertEqual(self.scope.open, 0)

    def test_processor_login_failure(self):
        self.fake.login_status = 500
        resp = self.register()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "UPSTREAM_AUTH_FAILED")


class AccountEndpointTests(ApiTestCase):
    def test_account_details(self):
        self.fake.reference_override = "REF1"
        self.register()
        resp = self.client.get("/accounts/REF1")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["accountReference"], "REF1")
        self.assertEqual(body["accounts"][0]["bankCode"], "035")

    def test_unknown_reference_is_not_found(self):
        resp = self.client.get("/accounts/REF404")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "NOT_FOUND")
        self.assertEqual(self.fake.requests, [])

    def test_unknown_user(self):
        resp = self.client.post("/users/missing/reserved-account")
        self.assertEqual(resp.status_code, 404)


class TransferEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.fake.reference_override = "REF1"
        self.register()
        self.fake.add_recipient("035", "001", "B")

    def transfer(self, **overrides):
        body = {
            "senderAccountReference": "REF1",
            "amount": 500,
            "destinationBankCode": "035",
            "destinationAccountNumber": "001",
            "destinationAccountName": "Not B",
        }
        body.update(overrides)
        return self.client.post("/transfers", json=body)

    def test_transfer(self):
        resp = self.transfer()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "SUCCESS")
        self.assertEqual(body["destinationAccountName"], "B")
        self.assertEqual(body["outcome"], "succeeded")
        self.assertEqual(self.fake.disbursements[0]["destinationAccountName"], "B")

    def test_timeout_is_reported_as_unknown_outcome(self):
        self.fake.disburse_timeout = True
        resp = self.transfer()
        self.assertEqual(resp.status_code, 504)
        body = resp.json()
        self.assertEqual(body["error"], "UPSTREAM_UNKNOWN_OUTCOME")
        self.assertEqual(body["status"], "PENDING")
        reference = body["reference"]

        self.fake.disburse_timeout = False
        resp = self.transfer(reference=reference)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["reference"], reference)
        self.assertEqual(len(self.fake.disbursements), 1)

        resp = self.client.get(f"/transfers/{reference}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "SUCCESS")

    def test_confirmed_failure_is_distinct_from_unknown(self):
        self.fake.disburse_status = "FAILED"
        resp = self.transfer()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "UPSTREAM_TRANSFER_FAILED")

    def test_unknown_recipient(self):
        resp = self.transfer(destinationAccountNumber="999")
        self.assertEqual(resp.status_code, 424)
        self.assertEqual(resp.json()["error"], "UPSTREAM_NOT_FOUND")
        self.assertEqual(self.fake.disbursements, [])

    def test_amount_with_trailing_zeros(self):
        resp = self.transfer(amount="500.000")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.fake.disbursements[0]["amount"], "500.00")

    def test_bad_amount(self):
        resp = self.transfer(amount=-1)
        self.assertEqual(resp.status_code, 422)

    def test_unknown_transfer_status(self):
        resp = self.client.get("/transfers/PGT-unknown")
        self.assertEqual(resp.status_code, 424)


if __name__ == "__main__":
    unittest.main()

import json
import unittest
from decimal import Decimal

import httpx

from paygate.clients.processor_client import ProcessorClient
from paygate.clients.schemas import TransferRequest
from paygate.errors import (
    UpstreamAccountError,
    UpstreamAuthError,
    UpstreamLookupError,
    UpstreamTransferError,
    UpstreamUnavailable,
    UpstreamUnknownOutcome,
)

from tests.fakes import FakeProcessor, make_settings


def transfer_request(reference="PGT-abc123", **overrides):
    fields = dict(
        amount=Decimal("500"),
        reference=reference,
        narration="Funds transfer",
        destination_bank_code="035",
        destination_account_number="001",
        destination_account_name="B",
        source_account_number="5000000001",
        currency="NGN",
    )
    fields.update(overrides)
    return TransferRequest(**fields)


class ProcessorClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.fake = FakeProcessor()
        self.http = self.fake.client()
        self.client = ProcessorClient(make_settings(), http_client=self.http)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        await self.http.aclose()

    async def test_authenticate_uses_basic_auth(self):
        token = await self.client.authenticate()
        self.assertEqual(token.access_token, "tok-1")
        self.assertEqual(token.expires_in, 3600)
        login = self.fake.requests[0]
        self.assertTrue(login.headers["Authorization"].startswith("Basic "))

    async def test_authenticate_rejected(self):
        self.fake.login_status = 503
        with self.assertRaises(UpstreamAuthError) as cm:
            await self.client.authenticate()
        self.assertEqual(cm.exception.upstream_status, 503)

    async def test_authenticate_without_token_field(self):
        def handler(request):
            return httpx.Response(200, json={"requestSuccessful": True, "responseBody": {"expiresIn": 10}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = ProcessorClient(make_settings(), http_client=http)
            with self.assertRaises(UpstreamAuthError):
                await client.authenticate()

    async def test_calls_after_login_carry_bearer_token(self):
        self.fake.seed_account("user-1")
        await self.client.get_reserved_account_details("user-1")
        lookup = self.fake.requests[-1]
        self.assertEqual(lookup.headers["Authorization"], "Bearer tok-1")

    async def test_token_reused_across_calls(self):
        self.fake.seed_account("user-1")
        await self.client.get_reserved_account_details("user-1")
        await self.client.get_reserved_account_details("user-1")
        self.assertEqual(self.fake.login_calls, 1)

    async def test_create_reserved_account_payload(self):
        detail = await self.client.create_reserved_account("user-1", "A", "a@x.com")
        self.assertEqual(detail.account_reference, "user-1")
        create = [r for r in self.fake.requests if r.method == "POST" and "reserved-accounts" in r.url.path][0]
        body = json.loads(create.content)
        self.assertEqual(body["accountReference"], "user-1")
        self.assertEqual(body["contractCode"], "CC-100")
        self.assertEqual(body["currencyCode"], "NGN")
        self.assertEqual(body["preferredBanks"], ["035"])
        self.assertFalse(body["getAllAvailableBanks"])
        self.assertEqual(body["customerEmail"], "a@x.com")

    async def test_create_twice_returns_the_same_account(self):
        first = await self.client.create_reserved_account("user-1", "A", "a@x.com")
        second = await self.client.create_reserved_account("user-1", "A", "a@x.com")
        self.assertEqual(first.account_reference, second.account_reference)
        self.assertEqual(first.accounts[0].account_number, second.accounts[0].account_number)
        self.assertEqual(len(self.fake.accounts), 1)

    async def test_create_failure(self):
        self.fake.create_status = 500
        with self.assertRaises(UpstreamAccountError):
            await self.client.create_reserved_account("user-1", "A", "a@x.com")

    async def test_lookup_unknown_reference(self):
        with self.assertRaises(UpstreamLookupError) as cm:
            await self.client.get_reserved_account_details("nope")
        self.assertEqual(cm.exception.upstream_status, 404)

    async def test_lookup_transport_failure_is_distinct(self):
        def handler(request):
            if request.url.path.endswith("/auth/login"):
                return httpx.Response(200, json={"responseBody": {"accessToken": "t"}})
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = ProcessorClient(make_settings(), http_client=http)
            with self.assertRaises(UpstreamUnavailable):
                await client.get_reserved_account_details("user-1")

    async def test_expired_token_triggers_single_reauth(self):
        self.fake.seed_account("user-1")
        await self.client.get_reserved_account_details("user-1")
        self.fake.reject_next_bearer = 1
        detail = await self.client.get_reserved_account_details("user-1")
        self.assertEqual(detail.account_reference, "user-1")
        self.assertEqual(self.fake.login_calls, 2)

    async def test_repeated_rejection_is_auth_error(self):
        self.fake.seed_account("user-1")
        self.fake.reject_next_bearer = 5
        with self.assertRaises(UpstreamAuthError):
            await self.client.get_reserved_account_details("user-1")
        self.assertEqual(self.fake.login_calls, 2)

    async def test_validate_recipient(self):
        self.fake.add_recipient("035", "001", "B")
        identity = await self.client.validate_recipient("001", "035")
        self.assertEqual(identity.account_name, "B")
        self.assertEqual(identity.bank_code, "035")

    async def test_validate_unknown_recipient(self):
        with self.assertRaises(UpstreamLookupError):
            await self.client.validate_recipient("999", "035")

    async def test_disburse(self):
        result = await self.client.disburse(transfer_request())
        self.assertEqual(result.status, "SUCCESS")
        self.assertEqual(result.reference, "PGT-abc123")
        self.assertEqual(result.provider_transaction_id, "MFDS000001")
        sent = self.fake.disbursements[0]
        self.assertEqual(sent["destinationAccountName"], "B")
        self.assertEqual(sent["sourceAccountNumber"], "5000000001")
        self.assertEqual(sent["amount"], "500.00")

    async def test_disburse_timeout_is_unknown_outcome(self):
        self.fake.disburse_timeout = True
        with self.assertRaises(UpstreamUnknownOutcome) as cm:
            await self.client.disburse(transfer_request())
        self.assertEqual(cm.exception.reference, "PGT-abc123")
        self.assertEqual(cm.exception.status_code, 504)

    async def test_disburse_rejected_is_transfer_error(self):
        def handler(request):
            if request.url.path.endswith("/auth/login"):
                return httpx.Response(200, json={"responseBody": {"accessToken": "t"}})
            return httpx.Response(400, json={"responseMessage": "Insufficient balance"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = ProcessorClient(make_settings(), http_client=http)
            with self.assertRaises(UpstreamTransferError) as cm:
                await client.disburse(transfer_request())
        self.assertIn("Insufficient balance", cm.exception.message)

    async def test_transfer_status(self):
        await self.client.disburse(transfer_request())
        status = await self.client.get_transfer_status("PGT-abc123")
        self.assertEqual(status.status, "SUCCESS")
        with self.assertRaises(UpstreamLookupError):
            await self.client.get_transfer_status("PGT-missing")


if __name__ == "__main__":
    unittest.main()

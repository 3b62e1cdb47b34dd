# src/paygate/clients/processor_client.py
"""
Processor Client
HTTP client for the payment processor (Monnify-style API).

Login uses HTTP Basic with the API key/secret; every other call carries the
Bearer token held by the TokenManager. A 401 on a Bearer call drops the
token and retries once with a fresh one.
"""

from typing import Any, Dict, Optional, Sequence, Type

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ..config import Settings
from ..errors import (
    UpstreamAccountError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamLookupError,
    UpstreamTransferError,
    UpstreamUnavailable,
    UpstreamUnknownOutcome,
)
from ..logging_config import get_logger
from .schemas import (
    AccessToken,
    DisbursementResult,
    Envelope,
    RecipientIdentity,
    ReservedAccountDetail,
    TransferRequest,
)
from .token_manager import TokenManager

logger = get_logger("paygate.processor")

LOGIN_PATH = "/v1/auth/login"
CREATE_RESERVED_ACCOUNT_PATH = "/v2/bank-transfer/reserved-accounts"
RESERVED_ACCOUNT_PATH = "/v1/bank-transfer/reserved-accounts/{reference}"
VALIDATE_ACCOUNT_PATH = "/v1/disbursements/account/validate"
DISBURSE_PATH = "/v2/disbursements/single"
DISBURSEMENT_STATUS_PATH = "/v2/disbursements/single/summary"

DUPLICATE_REFERENCE_MARKERS = ("already exists", "already been used", "duplicate", "existing reserved account")


def _message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        return str(data.get("responseMessage") or data.get("message") or data)[:200]
    return str(data)[:200]


class ProcessorClient:
    """
    Wraps every outbound call to the payment processor.

    Pass `http_client` to reuse an existing httpx.AsyncClient (it is then
    not closed by `aclose`).
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        token_manager: Optional[TokenManager] = None,
    ):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout)
        self._owns_client = http_client is None
        self.tokens = token_manager or TokenManager(self.authenticate, default_ttl_seconds=settings.token_ttl)

    async def aclose(self) -> None:
        self.tokens.reset()
        if self._owns_client:
            try:
                await self._client.aclose()
            except Exception:
                logger.exception("Error closing processor http client")

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _parse(resp: httpx.Response, model: Type[BaseModel], error_cls: Type[UpstreamError], what: str):
        try:
            envelope = Envelope.model_validate(resp.json())
        except (ValueError, SchemaError):
            logger.error("%s: processor returned a non-JSON body (status=%s)", what, resp.status_code)
            raise error_cls(f"{what}: malformed processor response", upstream_status=resp.status_code)
        if not isinstance(envelope.response_body, dict):
            logger.error("%s: processor response has no responseBody", what)
            raise error_cls(f"{what}: processor response has no body", upstream_status=resp.status_code)
        try:
            return model.model_validate(envelope.response_body)
        except SchemaError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            logger.error("%s: processor response missing fields: %s", what, fields)
            raise error_cls(
                f"{what}: processor response missing fields: {fields}",
                upstream_status=resp.status_code,
            )

    async def _send(self, method: str, path: str, token: str, **kwargs) -> httpx.Response:
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
        return await self._client.request(method, self._url(path), headers=headers, **kwargs)

    async def _authorized(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a Bearer call; on 401 re-authenticate once and retry.

        Transport errors (httpx.TransportError) propagate to the caller, which
        decides what they mean for that particular operation.
        """
        token = await self.tokens.get_token()
        resp = await self._send(method, path, token, **kwargs)
        if resp.status_code != 401:
            return resp

        logger.warning("%s %s rejected the access token; re-authenticating once", method, path)
        self.tokens.invalidate(token)
        token = await self.tokens.get_token()
        resp = await self._send(method, path, token, **kwargs)
        if resp.status_code == 401:
            logger.error("%s %s rejected a freshly issued access token", method, path)
            raise UpstreamAuthError("Processor rejected the access token", upstream_status=401)
        return resp

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    async def authenticate(self) -> AccessToken:
        """
        Exchange the API key/secret for a short-lived bearer token.
        """
        url = self._url(LOGIN_PATH)
        try:
            resp = await self._client.post(url, auth=(self.settings.api_key, self.settings.secret_key))
        except httpx.TransportError as e:
            logger.error("Processor login failed (transport): %s", e)
            raise UpstreamAuthError(f"Processor login failed: {e.__class__.__name__}")
        if not resp.is_success:
            logger.error("Processor login -> %s %s", resp.status_code, _message(resp))
            raise UpstreamAuthError("Processor login was rejected", upstream_status=resp.status_code)
        token = self._parse(resp, AccessToken, UpstreamAuthError, "login")
        logger.info("Processor login ok (expiresIn=%s)", token.expires_in)
        return token

    async def create_reserved_account(
        self,
        owner_id: str,
        owner_name: str,
        owner_email: str,
        contract_code: Optional[str] = None,
        preferred_banks: Optional[Sequence[str]] = None,
    ) -> ReservedAccountDetail:
        """
        Reserve a virtual account whose accountReference is the owner id.

        The processor refuses a second account for the same reference; that
        refusal is answered with the existing account, so retries are safe.
        """
        payload: Dict[str, Any] = {
            "accountReference": owner_id,
            "accountName": owner_name,
            "currencyCode": self.settings.currency,
            "contractCode": contract_code or self.settings.contract_code,
            "customerEmail": owner_email,
            "customerName": owner_name,
            "getAllAvailableBanks": False,
            "preferredBanks": list(preferred_banks or self.settings.preferred_banks),
        }
        logger.info("Creating reserved account reference=%s", owner_id)
        try:
            resp = await self._authorized("POST", CREATE_RESERVED_ACCOUNT_PATH, json=payload)
        except httpx.TransportError as e:
            logger.error("Create reserved account reference=%s failed (transport): %s", owner_id, e)
            raise UpstreamUnavailable(f"Processor unreachable while creating account: {e.__class__.__name__}")

        if resp.is_success:
            detail = self._parse(resp, ReservedAccountDetail, UpstreamAccountError, "create reserved account")
            logger.info("Reserved account created reference=%s", detail.account_reference)
            return detail

        message = _message(resp)
        if resp.status_code == 409 or (
            400 <= resp.status_code < 500 and any(m in message.lower() for m in DUPLICATE_REFERENCE_MARKERS)
        ):
            logger.info("Reserved account already exists for reference=%s; fetching it", owner_id)
            try:
                return await self.get_reserved_account_details(owner_id)
            except UpstreamLookupError:
                raise UpstreamAccountError(
                    f"Processor reported a duplicate reference it cannot find: {message}",
                    upstream_status=resp.status_code,
                )

        logger.error("Create reserved account reference=%s -> %s %s", owner_id, resp.status_code, message)
        raise UpstreamAccountError(f"Reserved account creation failed: {message}", upstream_status=resp.status_code)

    async def get_reserved_account_details(self, account_reference: str) -> ReservedAccountDetail:
        path = RESERVED_ACCOUNT_PATH.format(reference=account_reference)
        try:
            resp = await self._authorized("GET", path)
        except httpx.TransportError as e:
            logger.error("Reserved account lookup reference=%s failed (transport): %s", account_reference, e)
            raise UpstreamUnavailable(f"Processor unreachable during account lookup: {e.__class__.__name__}")
        if resp.status_code == 404:
            logger.warning("Reserved account not known upstream reference=%s", account_reference)
            raise UpstreamLookupError(
                f"Processor has no reserved account {account_reference}",
                upstream_status=404,
            )
        if not resp.is_success:
            logger.error("Reserved account lookup -> %s %s", resp.status_code, _message(resp))
            raise UpstreamAccountError(
                f"Reserved account lookup failed: {_message(resp)}",
                upstream_status=resp.status_code,
            )
        return self._parse(resp, ReservedAccountDetail, UpstreamAccountError, "reserved account lookup")

    async def validate_recipient(self, account_number: str, bank_code: str) -> RecipientIdentity:
        """
        Confirm the destination account exists and resolve its name.
        """
        params = {"accountNumber": account_number, "bankCode": bank_code}
        try:
            resp = await self._authorized("GET", VALIDATE_ACCOUNT_PATH, params=params)
        except httpx.TransportError as e:
            logger.error("Recipient validation failed (transport): %s", e)
            raise UpstreamUnavailable(f"Processor unreachable during recipient validation: {e.__class__.__name__}")
        if not resp.is_success:
            logger.warning(
                "Recipient validation bank=%s account=%s -> %s %s",
                bank_code,
                account_number,
                resp.status_code,
                _message(resp),
            )
            raise UpstreamLookupError(
                f"Recipient account could not be validated: {_message(resp)}",
                upstream_status=resp.status_code,
            )
        return self._parse(resp, RecipientIdentity, UpstreamLookupError, "recipient validation")

    async def disburse(self, transfer: TransferRequest) -> DisbursementResult:
        """
        Submit a single disbursement. A lost response is an unknown outcome.
        """
        logger.info(
            "Disbursing reference=%s amount=%s %s to bank=%s account=%s",
            transfer.reference,
            transfer.amount,
            transfer.currency,
            transfer.destination_bank_code,
            transfer.destination_account_number,
        )
        try:
            resp = await self._authorized("POST", DISBURSE_PATH, json=transfer.to_payload())
        except httpx.TransportError as e:
            logger.error("Disbursement reference=%s outcome unknown: %s", transfer.reference, e)
            raise UpstreamUnknownOutcome(
                f"No response from processor for transfer {transfer.reference}; status is unknown",
                reference=transfer.reference,
            )
        if not resp.is_success:
            logger.error(
                "Disbursement reference=%s -> %s %s",
                transfer.reference,
                resp.status_code,
                _message(resp),
            )
            raise UpstreamTransferError(
                f"Disbursement rejected: {_message(resp)}",
                upstream_status=resp.status_code,
                reference=transfer.reference,
            )
        result = self._parse(resp, DisbursementResult, UpstreamTransferError, "disbursement")
        logger.info("Disbursement reference=%s status=%s", result.reference, result.status)
        return result

    async def get_transfer_status(self, reference: str) -> DisbursementResult:
        try:
            resp = await self._authorized("GET", DISBURSEMENT_STATUS_PATH, params={"reference": reference})
        except httpx.TransportError as e:
            logger.error("Transfer status reference=%s failed (transport): %s", reference, e)
            raise UpstreamUnavailable(f"Processor unreachable during status query: {e.__class__.__name__}")
        if resp.status_code == 404:
            raise UpstreamLookupError(f"Processor has no transfer {reference}", upstream_status=404)
        if not resp.is_success:
            logger.error("Transfer status reference=%s -> %s %s", reference, resp.status_code, _message(resp))
            raise UpstreamTransferError(
                f"Transfer status query failed: {_message(resp)}",
                upstream_status=resp.status_code,
                reference=reference,
            )
        return self._parse(resp, DisbursementResult, UpstreamTransferError, "transfer status")

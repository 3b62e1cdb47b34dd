"""
Orchestration workflows.

Each workflow is a Pipeline of named stages sharing one context dict. A
stage either fills in the context or raises; the first failure stops the
pipeline and propagates unchanged. A stage may set ctx["done"] to finish
early with what is already in the context.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .clients.processor_client import ProcessorClient
from .clients.schemas import DisbursementResult, ReservedAccountDetail, TransferRequest
from .config import Settings
from .errors import (
    ConflictError,
    NotFound,
    PaygateError,
    PersistenceError,
    ReconciliationError,
    UpstreamLookupError,
    UpstreamTransferError,
    UpstreamUnknownOutcome,
    ValidationError,
)
from .logging_config import get_logger
from .models import UserAccount, UserStore
from .reconciliation import reconcile
from .references import FAILED, SUCCEEDED, UNKNOWN, TransferReferenceGenerator, resume_attempt
from .security import hash_password, issue_session_token

logger = get_logger("paygate.workflows")
inconsistency_logger = get_logger("paygate.inconsistency")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{1,20}$")
BANK_CODE_PATTERN = re.compile(r"^[0-9A-Za-z]{2,10}$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_NARRATION = "Funds transfer"
CENT = Decimal("0.01")

FAILED_TRANSFER_STATUSES = {"FAILED", "REVERSED", "EXPIRED", "CANCELLED"}
SUCCESS_TRANSFER_STATUSES = {"SUCCESS", "COMPLETED"}

StageFn = Callable[[Dict[str, Any]], Awaitable[None]]


def _has_sub_cent_digits(amount: Decimal) -> bool:
    try:
        return amount != amount.quantize(CENT)
    except InvalidOperation:
        return True


@dataclass
class Stage:
    name: str
    run: StageFn


class Pipeline:
    def __init__(self, name: str, stages: List[Stage]):
        self.name = name
        self.stages = stages

    async def run(self, ctx: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ctx = ctx if ctx is not None else {}
        ctx.setdefault("completed_stages", [])
        for stage in self.stages:
            if ctx.get("done"):
                break
            try:
                await stage.run(ctx)
            except PaygateError as e:
                logger.warning("%s: stage '%s' failed with %s: %s", self.name, stage.name, e.code, e.message)
                ctx["failed_stage"] = stage.name
                raise
            except Exception:
                logger.exception("%s: stage '%s' crashed", self.name, stage.name)
                ctx["failed_stage"] = stage.name
                raise
            ctx["completed_stages"].append(stage.name)
        return ctx


@dataclass
class TransferCommand:
    sender_account_reference: str
    amount: Any
    destination_bank_code: str
    destination_account_number: str
    narration: Optional[str] = None
    currency: Optional[str] = None
    reference: Optional[str] = None
    # Accepted for compatibility; the validated name is always used instead
    destination_account_name: Optional[str] = None


class Workflows:
    """
    The composite operations exposed by the API.

    The processor client and reference generator are process-wide; the user
    store is passed to each call and must outlive it.
    """

    def __init__(
        self,
        processor: ProcessorClient,
        settings: Settings,
        references: Optional[TransferReferenceGenerator] = None,
    ):
        self.processor = processor
        self.settings = settings
        self.references = references or TransferReferenceGenerator(settings.reference_prefix)

    # ------------------------------------------------------------------
    # shared stages
    # ------------------------------------------------------------------
    async def _authenticate(self, ctx: Dict[str, Any]) -> None:
        await self.processor.tokens.get_token()

    async def _create_reserved_account(self, ctx: Dict[str, Any]) -> None:
        user: UserAccount = ctx["user"]
        ctx["account"] = await self.processor.create_reserved_account(
            owner_id=user.id,
            owner_name=user.name,
            owner_email=user.email,
            contract_code=self.settings.contract_code,
        )

    async def _persist_account_reference(self, ctx: Dict[str, Any]) -> None:
        store: UserStore = ctx["store"]
        user: UserAccount = ctx["user"]
        detail: ReservedAccountDetail = ctx["account"]
        try:
            if detail.accounts:
                try:
                    ctx["user"] = await reconcile(user, detail, store)
                    return
                except ReconciliationError as e:
                    logger.warning("Account created for user=%s but not reconcilable yet: %s", user.id, e.message)
            updated = user.copy()
            updated.account_reference = detail.account_reference
            ctx["user"] = await store.save(updated)
        except (PersistenceError, ConflictError) as e:
            inconsistency_logger.error(
                "Reserved account %s exists upstream but user=%s was not updated locally: %s",
                detail.account_reference,
                user.id,
                e.message,
            )
            raise PersistenceError(
                "Reserved account was created but could not be saved; retry opening the account",
                user_id=user.id,
                account_reference=detail.account_reference,
            )

    # ------------------------------------------------------------------
    # register + open account
    # ------------------------------------------------------------------
    async def _validate_registration(self, ctx: Dict[str, Any]) -> None:
        name = (ctx.get("name") or "").strip()
        email = (ctx.get("email") or "").strip().lower()
        password = ctx.get("password") or ""
        errors = []
        if not name:
            errors.append("name is required")
        if not EMAIL_PATTERN.match(email):
            errors.append("email is invalid")
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        if errors:
            raise ValidationError("; ".join(errors), fields=errors)
        ctx["name"], ctx["email"] = name, email

    async def _check_email_free(self, ctx: Dict[str, Any]) -> None:
        if await ctx["store"].find_one(email=ctx["email"]):
            raise ConflictError(f"Email {ctx['email']} is already registered")

    async def _persist_user(self, ctx: Dict[str, Any]) -> None:
        user = UserAccount(name=ctx["name"], email=ctx["email"], password_hash=hash_password(ctx.pop("password")))
        ctx["user"] = await ctx["store"].save(user)
        logger.info("Registered user=%s email=%s", user.id, user.email)

    async def _issue_token(self, ctx: Dict[str, Any]) -> None:
        ctx["token"] = issue_session_token(ctx["user"].id, self.settings.jwt_secret)

    async def register(self, store: UserStore, name: str, email: str, password: str) -> Dict[str, Any]:
        """
        Persist a user, reserve their account and issue a session token.

        If the processor step fails the user record stays without an account
        reference; `open_account` retries from there. Any error raised after
        the user is saved carries `user_id` so the caller can do that.
        """
        pipeline = Pipeline(
            "register",
            [
                Stage("validate", self._validate_registration),
                Stage("check_email", self._check_email_free),
                Stage("persist_user", self._persist_user),
                Stage("authenticate", self._authenticate),
                Stage("create_reserved_account", self._create_reserved_account),
                Stage("persist_account_reference", self._persist_account_reference),
                Stage("issue_token", self._issue_token),
            ],
        )
        ctx: Dict[str, Any] = {"store": store, "name": name, "email": email, "password": password}
        try:
            return await pipeline.run(ctx)
        except PaygateError as e:
            if "user" in ctx:
                e.extra.setdefault("user_id", ctx["user"].id)
            raise

    # ------------------------------------------------------------------
    # open account for an existing user
    # ------------------------------------------------------------------
    async def _load_user(self, ctx: Dict[str, Any]) -> None:
        user = await ctx["store"].find_one(id=ctx["user_id"])
        if user is None:
            raise NotFound(f"User {ctx['user_id']} not found")
        ctx["user"] = user
        if user.has_reserved_account:
            logger.info("User=%s already has reserved account %s", user.id, user.account_reference)
            ctx["done"] = True

    async def open_account(self, store: UserStore, user_id: str) -> Dict[str, Any]:
        pipeline = Pipeline(
            "open_account",
            [
                Stage("load_user", self._load_user),
                Stage("authenticate", self._authenticate),
                Stage("create_reserved_account", self._create_reserved_account),
                Stage("persist_account_reference", self._persist_account_reference),
            ],
        )
        return await pipeline.run({"store": store, "user_id": user_id})

    # ------------------------------------------------------------------
    # account details
    # ------------------------------------------------------------------
    async def _resolve_user_by_reference(self, ctx: Dict[str, Any]) -> None:
        reference = (ctx.get("account_reference") or "").strip()
        if not reference:
            raise ValidationError("account reference is required")
        user = await ctx["store"].find_one(account_reference=reference)
        if user is None:
            raise NotFound(f"No user has account reference {reference}")
        ctx["user"] = user

    async def _fetch_account(self, ctx: Dict[str, Any]) -> None:
        ctx["account"] = await self.processor.get_reserved_account_details(ctx["user"].account_reference)

    async def _reconcile(self, ctx: Dict[str, Any]) -> None:
        ctx["user"] = await reconcile(ctx["user"], ctx["account"], ctx["store"])

    async def account_details(self, store: UserStore, account_reference: str) -> Dict[str, Any]:
        pipeline = Pipeline(
            "account_details",
            [
                Stage("resolve_user", self._resolve_user_by_reference),
                Stage("authenticate", self._authenticate),
                Stage("fetch_account", self._fetch_account),
                Stage("reconcile", self._reconcile),
            ],
        )
        return await pipeline.run({"store": store, "account_reference": account_reference})

    # ------------------------------------------------------------------
    # transfer
    # ------------------------------------------------------------------
    async def _validate_transfer(self, ctx: Dict[str, Any]) -> None:
        cmd: TransferCommand = ctx["command"]
        errors = []
        try:
            amount = Decimal(str(cmd.amount))
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or not amount.is_finite() or amount <= 0:
            errors.append("amount must be a positive number")
        elif _has_sub_cent_digits(amount):
            errors.append("amount must have at most two decimal places")
        if not (cmd.sender_account_reference or "").strip():
            errors.append("senderAccountReference is required")
        if not BANK_CODE_PATTERN.match(cmd.destination_bank_code or ""):
            errors.append("destinationBankCode is invalid")
        if not ACCOUNT_NUMBER_PATTERN.match(cmd.destination_account_number or ""):
            errors.append("destinationAccountNumber must be digits")
        currency = (cmd.currency or self.settings.currency).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            errors.append("currency must be a 3-letter code")
        if errors:
            raise ValidationError("; ".join(errors), fields=errors)
        ctx["amount"] = amount.quantize(CENT)
        ctx["currency"] = currency
        ctx["account_reference"] = cmd.sender_account_reference.strip()

    async def _resolve_source_account(self, ctx: Dict[str, Any]) -> None:
        user: UserAccount = ctx["user"]
        if not user.account_number:
            logger.info("Sender %s has no reconciled account number; asking processor", user.account_reference)
            await self._authenticate(ctx)
            await self._fetch_account(ctx)
            await self._reconcile(ctx)
            user = ctx["user"]
        ctx["source_account_number"] = user.account_number

    async def _validate_recipient(self, ctx: Dict[str, Any]) -> None:
        cmd: TransferCommand = ctx["command"]
        ctx["recipient"] = await self.processor.validate_recipient(
            cmd.destination_account_number, cmd.destination_bank_code
        )
        if cmd.destination_account_name and cmd.destination_account_name != ctx["recipient"].account_name:
            logger.info(
                "Caller-supplied recipient name differs from validated name for account %s; using validated name",
                cmd.destination_account_number,
            )

    async def _assign_reference(self, ctx: Dict[str, Any]) -> None:
        cmd: TransferCommand = ctx["command"]
        if not cmd.reference:
            ctx["attempt"] = self.references.new_attempt()
            return

        attempt = resume_attempt(cmd.reference.strip())
        ctx["attempt"] = attempt
        try:
            status = await self.processor.get_transfer_status(attempt.reference)
        except UpstreamLookupError:
            logger.info("Transfer %s never reached the processor; submitting with the same reference", attempt.reference)
            return

        if status.status.upper() in FAILED_TRANSFER_STATUSES:
            attempt.mark(FAILED)
            raise ValidationError(
                f"Transfer {attempt.reference} failed upstream; submit a new transfer without a reference",
                reference=attempt.reference,
                status=status.status,
            )
        logger.info("Transfer %s already known upstream with status=%s", attempt.reference, status.status)
        attempt.mark(SUCCEEDED if status.status.upper() in SUCCESS_TRANSFER_STATUSES else UNKNOWN)
        ctx["result"] = status
        ctx["done"] = True

    async def _disburse(self, ctx: Dict[str, Any]) -> None:
        cmd: TransferCommand = ctx["command"]
        attempt = ctx["attempt"]
        recipient = ctx["recipient"]
        request = TransferRequest(
            amount=ctx["amount"],
            reference=attempt.reference,
            narration=(cmd.narration or "").strip() or DEFAULT_NARRATION,
            destination_bank_code=recipient.bank_code,
            destination_account_number=recipient.account_number,
            destination_account_name=recipient.account_name,
            source_account_number=ctx["source_account_number"],
            currency=ctx["currency"],
        )
        try:
            result: DisbursementResult = await self.processor.disburse(request)
        except UpstreamUnknownOutcome:
            attempt.mark(UNKNOWN)
            raise
        except UpstreamTransferError:
            attempt.mark(FAILED)
            raise

        if result.status.upper() in FAILED_TRANSFER_STATUSES:
            attempt.mark(FAILED)
            raise UpstreamTransferError(
                f"Processor declined transfer {attempt.reference} (status={result.status})",
                reference=attempt.reference,
                status=result.status,
            )
        attempt.mark(SUCCEEDED if result.status.upper() in SUCCESS_TRANSFER_STATUSES else UNKNOWN)
        ctx["result"] = result

    async def transfer(self, store: UserStore, command: TransferCommand) -> Dict[str, Any]:
        """
        Validate the recipient and disburse from the sender's reserved account.

        A timeout while disbursing raises UpstreamUnknownOutcome with the
        reference; resubmitting with that reference checks the status first
        and never pays twice.
        """
        pipeline = Pipeline(
            "transfer",
            [
                Stage("validate", self._validate_transfer),
                Stage("resolve_sender", self._resolve_user_by_reference),
                Stage("resolve_source_account", self._resolve_source_account),
                Stage("authenticate", self._authenticate),
                Stage("validate_recipient", self._validate_recipient),
                Stage("assign_reference", self._assign_reference),
                Stage("disburse", self._disburse),
            ],
        )
        return await pipeline.run({"store": store, "command": command})

    # ------------------------------------------------------------------
    # transfer status
    # ------------------------------------------------------------------
    async def transfer_status(self, reference: str) -> DisbursementResult:
        attempt = resume_attempt((reference or "").strip())
        await self.processor.tokens.get_token()
        return await self.processor.get_transfer_status(attempt.reference)

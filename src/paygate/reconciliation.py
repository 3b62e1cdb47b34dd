"""
Account reconciliation: copy the processor's view of a reserved account onto
the local user record.
"""

from datetime import datetime, timezone

from .clients.schemas import ReservedAccountDetail
from .errors import ReconciliationError
from .logging_config import get_logger
from .models import UserAccount, UserStore

logger = get_logger("paygate.reconciliation")


def reconciled_fields(detail: ReservedAccountDetail) -> dict:
    """
    Bank detail fields as the processor reports them.

    Only the first entry of `accounts` is used; an empty list means the
    processor returned an incomplete account.
    """
    if not detail.accounts:
        raise ReconciliationError(
            f"Processor returned no bank accounts for reserved account {detail.account_reference}",
            account_reference=detail.account_reference,
        )
    primary = detail.accounts[0]
    if not primary.account_number:
        raise ReconciliationError(
            f"Processor bank account for {detail.account_reference} has no account number",
            account_reference=detail.account_reference,
        )
    return {
        "contract_code": detail.contract_code,
        "account_name": detail.account_name,
        "currency_code": detail.currency_code,
        "bank_code": primary.bank_code,
        "bank_name": primary.bank_name,
        "account_number": primary.account_number,
    }


async def reconcile(user: UserAccount, detail: ReservedAccountDetail, store: UserStore) -> UserAccount:
    """
    Apply `detail` to `user` and persist it.

    Reconciling again with the same detail changes nothing and does not
    write to the store.
    """
    if user.account_reference and user.account_reference != detail.account_reference:
        raise ReconciliationError(
            f"Processor detail for {detail.account_reference} does not belong to user {user.id}",
            account_reference=detail.account_reference,
        )

    updates = reconciled_fields(detail)
    if user.account_reference is None:
        updates["account_reference"] = detail.account_reference

    changed = {k: v for k, v in updates.items() if getattr(user, k) != v}
    if not changed:
        logger.info("Reconcile user=%s reference=%s: already up to date", user.id, detail.account_reference)
        return user

    updated = user.copy()
    for key, value in changed.items():
        setattr(updated, key, value)
    updated.updated_at = datetime.now(timezone.utc)
    saved = await store.save(updated)
    logger.info(
        "Reconciled user=%s reference=%s fields=%s",
        user.id,
        detail.account_reference,
        sorted(changed),
    )
    return saved

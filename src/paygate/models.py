from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import uuid4

# Fields that reconciliation copies from the processor
BANK_DETAIL_FIELDS = (
    "contract_code",
    "account_name",
    "currency_code",
    "bank_code",
    "bank_name",
    "account_number",
)

LOOKUP_FIELDS = ("id", "email", "account_reference")


def new_user_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserAccount:
    """
    Local user record.

    `account_reference` stays None until the processor has confirmed a
    reserved account for this user; the bank detail fields stay None until
    the first reconciliation.
    """

    name: str
    email: str
    password_hash: str
    id: str = field(default_factory=new_user_id)
    account_reference: Optional[str] = None
    contract_code: Optional[str] = None
    account_name: Optional[str] = None
    currency_code: Optional[str] = None
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def has_reserved_account(self) -> bool:
        return self.account_reference is not None

    def bank_details(self) -> dict:
        return {name: getattr(self, name) for name in BANK_DETAIL_FIELDS}

    def copy(self) -> "UserAccount":
        return UserAccount(**{f.name: getattr(self, f.name) for f in fields(self)})


class UserStore(Protocol):
    """
    Persistence for user records.

    `find_one` accepts exactly one of the LOOKUP_FIELDS as a keyword and
    returns None when nothing matches. `save` inserts or updates by id.
    Implementations raise PersistenceError on storage failure and
    ConflictError when a unique field (email) is taken.
    """

    async def find_one(self, **criteria: str) -> Optional[UserAccount]:
        ...

    async def save(self, user: UserAccount) -> UserAccount:
        ...

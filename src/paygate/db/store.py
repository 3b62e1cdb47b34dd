# src/paygate/db/store.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConflictError, PersistenceError
from ..logging_config import get_logger
from ..models import LOOKUP_FIELDS, UserAccount
from .models import User

logger = get_logger("paygate.db")

_COLUMNS = {
    "id": User.user_id,
    "email": User.email,
    "account_reference": User.account_reference,
}


def _to_domain(row: User) -> UserAccount:
    return UserAccount(
        id=row.user_id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        account_reference=row.account_reference,
        contract_code=row.contract_code,
        account_name=row.account_name,
        currency_code=row.currency_code,
        bank_code=row.bank_code,
        bank_name=row.bank_name,
        account_number=row.account_number,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply(row: User, user: UserAccount) -> None:
    row.name = user.name
    row.email = user.email
    row.password_hash = user.password_hash
    row.account_reference = user.account_reference
    row.contract_code = user.contract_code
    row.account_name = user.account_name
    row.currency_code = user.currency_code
    row.bank_code = user.bank_code
    row.bank_name = user.bank_name
    row.account_number = user.account_number
    row.created_at = user.created_at
    row.updated_at = user.updated_at


class SqlUserStore:
    """UserStore backed by the async SQLAlchemy session of one request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_one(self, **criteria: str) -> Optional[UserAccount]:
        if len(criteria) != 1 or not set(criteria) <= set(LOOKUP_FIELDS):
            raise ValueError(f"find_one takes exactly one of {LOOKUP_FIELDS}, got {sorted(criteria)}")
        (field, value), = criteria.items()
        if field == "email":
            value = value.strip().lower()
        try:
            res = await self.db.execute(select(User).where(_COLUMNS[field] == value))
            row = res.scalars().first()
        except SQLAlchemyError as e:
            logger.exception("User lookup by %s failed: %s", field, e)
            raise PersistenceError("User store lookup failed")
        return _to_domain(row) if row else None

    async def save(self, user: UserAccount) -> UserAccount:
        try:
            row = await self.db.get(User, user.id)
            if row is None:
                row = User(user_id=user.id)
                self.db.add(row)
            _apply(row, user)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Unique constraint rejected user=%s: %s", user.id, e.orig)
            raise ConflictError("A user with this email or account reference already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Saving user=%s failed: %s", user.id, e)
            raise PersistenceError("User store write failed", user_id=user.id)
        return user

# src/paygate/db/models.py
from sqlalchemy import TIMESTAMP, Column, String

from .session import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    # Set once the processor has confirmed a reserved account
    account_reference = Column(String(64), unique=True, nullable=True, index=True)
    # Reconciled from the processor
    contract_code = Column(String(64))
    account_name = Column(String(255))
    currency_code = Column(String(3))
    bank_code = Column(String(20))
    bank_name = Column(String(255))
    account_number = Column(String(20))
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))

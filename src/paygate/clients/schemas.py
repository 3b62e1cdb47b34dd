"""
Schemas for payment processor payloads.

Every processor response is wrapped in an envelope; only `responseBody` is
interesting. Each endpoint gets its own model so a missing field fails
validation instead of surfacing later as a KeyError.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProcessorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Envelope(ProcessorModel):
    request_successful: Optional[bool] = Field(None, alias="requestSuccessful")
    response_message: Optional[str] = Field(None, alias="responseMessage")
    response_code: Optional[str] = Field(None, alias="responseCode")
    response_body: Optional[Any] = Field(None, alias="responseBody")


class AccessToken(ProcessorModel):
    access_token: str = Field(..., alias="accessToken", min_length=1)
    expires_in: Optional[int] = Field(None, alias="expiresIn")


class BankAccount(ProcessorModel):
    bank_code: Optional[str] = Field(None, alias="bankCode")
    bank_name: Optional[str] = Field(None, alias="bankName")
    account_number: Optional[str] = Field(None, alias="accountNumber")


class ReservedAccountDetail(ProcessorModel):
    account_reference: str = Field(..., alias="accountReference", min_length=1)
    account_name: Optional[str] = Field(None, alias="accountName")
    currency_code: Optional[str] = Field(None, alias="currencyCode")
    contract_code: Optional[str] = Field(None, alias="contractCode")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName")
    status: Optional[str] = None
    accounts: List[BankAccount] = Field(default_factory=list)


class RecipientIdentity(ProcessorModel):
    bank_code: str = Field(..., alias="bankCode")
    account_number: str = Field(..., alias="accountNumber")
    account_name: str = Field(..., alias="accountName", min_length=1)


class DisbursementResult(ProcessorModel):
    status: str
    reference: str
    provider_transaction_id: Optional[str] = Field(None, alias="transactionReference")
    amount: Optional[Decimal] = None
    fee: Optional[Decimal] = Field(None, alias="totalFee")
    narration: Optional[str] = None
    destination_account_name: Optional[str] = Field(None, alias="destinationAccountName")
    date_created: Optional[str] = Field(None, alias="dateCreated")


class TransferRequest(BaseModel):
    """A single outbound disbursement, ready to submit."""

    amount: Decimal = Field(..., gt=0)
    reference: str
    narration: str
    destination_bank_code: str
    destination_account_number: str
    destination_account_name: str
    source_account_number: str
    currency: str = "NGN"

    def to_payload(self) -> dict:
        return {
            "amount": str(self.amount.quantize(Decimal("0.01"))),
            "reference": self.reference,
            "narration": self.narration,
            "destinationBankCode": self.destination_bank_code,
            "destinationAccountNumber": self.destination_account_number,
            "currency": self.currency,
            "sourceAccountNumber": self.source_account_number,
            "destinationAccountName": self.destination_account_name,
        }

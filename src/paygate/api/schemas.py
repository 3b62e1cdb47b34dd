from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(ApiModel):
    name: str = Field(..., examples=["Ada Obi"])
    email: str = Field(..., examples=["ada@example.com"])
    password: str = Field(..., examples=["correct-horse-battery"])


class BankDetails(ApiModel):
    contract_code: Optional[str] = Field(None, alias="contractCode")
    account_name: Optional[str] = Field(None, alias="accountName")
    currency_code: Optional[str] = Field(None, alias="currencyCode")
    bank_code: Optional[str] = Field(None, alias="bankCode")
    bank_name: Optional[str] = Field(None, alias="bankName")
    account_number: Optional[str] = Field(None, alias="accountNumber")


class UserOut(ApiModel):
    id: str
    name: str
    email: str
    account_reference: Optional[str] = Field(None, alias="accountReference")
    bank_details: BankDetails = Field(default_factory=BankDetails, alias="bankDetails")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class RegisterResponse(ApiModel):
    token: str
    user: UserOut
    account_reference: str = Field(..., alias="accountReference")


class OpenAccountResponse(ApiModel):
    user: UserOut
    account_reference: str = Field(..., alias="accountReference")
    created: bool


class BankAccountOut(ApiModel):
    bank_code: Optional[str] = Field(None, alias="bankCode")
    bank_name: Optional[str] = Field(None, alias="bankName")
    account_number: Optional[str] = Field(None, alias="accountNumber")


class AccountDetailOut(ApiModel):
    account_reference: str = Field(..., alias="accountReference")
    account_name: Optional[str] = Field(None, alias="accountName")
    currency_code: Optional[str] = Field(None, alias="currencyCode")
    contract_code: Optional[str] = Field(None, alias="contractCode")
    status: Optional[str] = None
    accounts: List[BankAccountOut] = Field(default_factory=list)


class TransferIn(ApiModel):
    sender_account_reference: str = Field(..., alias="senderAccountReference")
    amount: Decimal = Field(..., examples=[500])
    destination_bank_code: str = Field(..., alias="destinationBankCode", examples=["035"])
    destination_account_number: str = Field(..., alias="destinationAccountNumber", examples=["0123456789"])
    narration: Optional[str] = None
    currency: Optional[str] = None
    destination_account_name: Optional[str] = Field(None, alias="destinationAccountName")
    # Resubmit a transfer whose outcome was unknown
    reference: Optional[str] = None


class TransferOut(ApiModel):
    status: str
    reference: str
    provider_transaction_id: Optional[str] = Field(None, alias="providerTransactionId")
    amount: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    destination_account_name: Optional[str] = Field(None, alias="destinationAccountName")
    outcome: Optional[str] = None

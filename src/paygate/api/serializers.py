from typing import Any, Dict, Optional

from ..clients.schemas import DisbursementResult, ReservedAccountDetail
from ..models import UserAccount
from ..references import TransferAttempt


def serialize_user(u: UserAccount) -> Dict[str, Any]:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "accountReference": u.account_reference,
        "bankDetails": {
            "contractCode": u.contract_code,
            "accountName": u.account_name,
            "currencyCode": u.currency_code,
            "bankCode": u.bank_code,
            "bankName": u.bank_name,
            "accountNumber": u.account_number,
        },
        "createdAt": u.created_at.isoformat() if u.created_at else None,
        "updatedAt": u.updated_at.isoformat() if u.updated_at else None,
    }


def serialize_account_detail(d: ReservedAccountDetail) -> Dict[str, Any]:
    return {
        "accountReference": d.account_reference,
        "accountName": d.account_name,
        "currencyCode": d.currency_code,
        "contractCode": d.contract_code,
        "status": d.status,
        "accounts": [
            {"bankCode": a.bank_code, "bankName": a.bank_name, "accountNumber": a.account_number}
            for a in d.accounts
        ],
    }


def serialize_disbursement(r: DisbursementResult, attempt: Optional[TransferAttempt] = None) -> Dict[str, Any]:
    return {
        "status": r.status,
        "reference": r.reference,
        "providerTransactionId": r.provider_transaction_id,
        "amount": r.amount,
        "fee": r.fee,
        "destinationAccountName": r.destination_account_name,
        "outcome": attempt.outcome if attempt else None,
    }

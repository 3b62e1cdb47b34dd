from fastapi import APIRouter, Depends

from ..workflows import TransferCommand
from .deps import get_store_scope, get_workflows, run_shielded
from .schemas import TransferIn, TransferOut
from .serializers import serialize_disbursement


router = APIRouter(tags=["transfers"])


@router.post("/transfers", response_model=TransferOut)
async def create_transfer(payload: TransferIn, scope=Depends(get_store_scope), workflows=Depends(get_workflows)):
    """
    Send money from the sender's reserved account.

    A processor timeout answers 504 UPSTREAM_UNKNOWN_OUTCOME with the
    reference; resubmit with that reference to settle it safely.
    """
    command = TransferCommand(
        sender_account_reference=payload.sender_account_reference,
        amount=payload.amount,
        destination_bank_code=payload.destination_bank_code,
        destination_account_number=payload.destination_account_number,
        narration=payload.narration,
        currency=payload.currency,
        reference=payload.reference,
        destination_account_name=payload.destination_account_name,
    )
    ctx = await run_shielded("transfer", scope, workflows.transfer, command)
    body = serialize_disbursement(ctx["result"], ctx.get("attempt"))
    if body["destinationAccountName"] is None and ctx.get("recipient"):
        body["destinationAccountName"] = ctx["recipient"].account_name
    return body


@router.get("/transfers/{reference}", response_model=TransferOut)
async def get_transfer(reference: str, workflows=Depends(get_workflows)):
    """
    Current processor status of a transfer.
    """
    result = await workflows.transfer_status(reference)
    return serialize_disbursement(result)

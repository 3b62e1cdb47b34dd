from fastapi import APIRouter, Depends

from ..logging_config import get_logger
from .deps import get_store, get_store_scope, get_workflows, run_shielded
from .schemas import AccountDetailOut, OpenAccountResponse
from .serializers import serialize_account_detail, serialize_user

logger = get_logger("paygate.api.accounts")

router = APIRouter(tags=["accounts"])


@router.post("/users/{user_id}/reserved-account", response_model=OpenAccountResponse)
async def open_reserved_account(user_id: str, scope=Depends(get_store_scope), workflows=Depends(get_workflows)):
    """
    Reserve an account for a user registered without one.
    """
    ctx = await run_shielded("open_account", scope, workflows.open_account, user_id)
    user = ctx["user"]
    return {
        "user": serialize_user(user),
        "accountReference": user.account_reference,
        "created": "create_reserved_account" in ctx["completed_stages"],
    }


@router.get("/accounts/{reference}", response_model=AccountDetailOut)
async def get_account(reference: str, store=Depends(get_store), workflows=Depends(get_workflows)):
    """
    Fetch the processor's view of a reserved account and sync it locally.
    """
    logger.info("Account detail lookup reference=%s", reference)
    ctx = await workflows.account_details(store, reference)
    return serialize_account_detail(ctx["account"])

from fastapi import APIRouter, Depends

from .deps import get_store_scope, get_workflows, run_shielded
from .schemas import RegisterRequest, RegisterResponse
from .serializers import serialize_user


router = APIRouter(tags=["auth"])


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
async def register(payload: RegisterRequest, scope=Depends(get_store_scope), workflows=Depends(get_workflows)):
    """
    Register a user and open their reserved account.

    The workflow is shielded so a client disconnect cannot interrupt a
    processor call halfway.
    """
    ctx = await run_shielded("register", scope, workflows.register, payload.name, payload.email, payload.password)
    user = ctx["user"]
    return {
        "token": ctx["token"],
        "user": serialize_user(user),
        "accountReference": user.account_reference,
    }

import asyncio
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncContextManager, Awaitable, Callable, Set

from fastapi import Depends, Request

from ..db.deps import get_db
from ..db.store import SqlUserStore
from ..logging_config import get_logger
from ..models import UserStore
from ..workflows import Workflows

logger = get_logger("paygate.api")

StoreScope = Callable[[], AsyncContextManager[UserStore]]

# workflows still running after their request went away
_detached: Set[asyncio.Task] = set()


def get_workflows(request: Request) -> Workflows:
    return request.app.state.workflows


async def get_store(db=Depends(get_db)) -> SqlUserStore:
    return SqlUserStore(db)


def get_store_scope(request: Request) -> StoreScope:
    """
    Store factory for shielded workflows. Each call opens its own session,
    so the workflow can keep writing after the request is cancelled.
    """
    session_factory = request.app.state.session_factory

    @asynccontextmanager
    async def scope():
        async with session_factory() as session:
            yield SqlUserStore(session)

    return scope


def _finished(name: str, task: asyncio.Task) -> None:
    _detached.discard(task)
    if task.cancelled():
        logger.warning("%s: workflow task was cancelled", name)
        return
    exc = task.exception()
    if exc is not None:
        logger.info("%s: workflow finished with %s", name, exc.__class__.__name__)


async def run_shielded(name: str, scope: StoreScope, workflow: Callable[..., Awaitable[Any]], *args: Any) -> Any:
    """
    Run `workflow(store, *args)` in its own task with its own store.

    A client disconnect cancels only the wait; the task runs to completion
    and its outcome is logged.
    """

    async def job():
        async with scope() as store:
            return await workflow(store, *args)

    task = asyncio.ensure_future(job())
    _detached.add(task)
    task.add_done_callback(partial(_finished, name))
    return await asyncio.shield(task)


async def drain_detached() -> None:
    """Wait for shielded workflows still in flight."""
    if _detached:
        logger.info("Waiting for %d in-flight workflow(s)", len(_detached))
        await asyncio.gather(*list(_detached), return_exceptions=True)

# src/paygate/db/deps.py
from typing import AsyncGenerator

from fastapi import Request


async def get_db(request: Request) -> AsyncGenerator:
    """
    Async DB session dependency for FastAPI routes.
    """
    async with request.app.state.session_factory() as session:
        yield session

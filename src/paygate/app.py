"""
paygate/app.py

FastAPI application entrypoint for the paygate service.

This module wires together:
- Configuration (validated before the app is built)
- Logging configuration (file-based under logs/)
- The processor client, token manager and workflows (one per process)
- Domain routers under paygate/api/ (auth, accounts, transfers)
"""

import os
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from . import __version__
from .api.accounts import router as accounts_router
from .api.auth import router as auth_router
from .api.deps import drain_detached
from .api.errors import register_error_handlers
from .api.transfers import router as transfers_router
from .clients.processor_client import ProcessorClient
from .config import Settings, load_settings
from .db.session import create_engine, create_session_factory, init_models
from .logging_config import get_logger, setup_logging
from .workflows import Workflows

logger = get_logger("paygate")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def create_app(settings: Optional[Settings] = None, processor: Optional[ProcessorClient] = None) -> FastAPI:
    """
    Build the application. Fails fast with ConfigError when settings are
    incomplete.
    """
    settings = settings or load_settings()
    setup_logging()

    app = FastAPI(title="paygate", version=__version__)
    app.state.settings = settings
    app.state.processor = processor or ProcessorClient(settings)
    app.state.workflows = Workflows(app.state.processor, settings)
    app.state.engine = None
    app.state.session_factory = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Request logger; also sets the security response headers. Bodies are
        not logged; they carry passwords.
        """
        started = time.perf_counter()
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        logger.info(
            "HTTP %s %s from %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            request.client.host if request.client else "?",
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    register_error_handlers(app)

    @app.get("/health")
    async def health():
        """
        Simple health check endpoint.
        """
        return {"status": "healthy"}

    app.include_router(auth_router)
    app.include_router(accounts_router)
    app.include_router(transfers_router)

    @app.on_event("startup")
    async def on_startup():
        if settings.database_url and app.state.session_factory is None:
            app.state.engine = create_engine(settings.database_url)
            await init_models(app.state.engine)
            app.state.session_factory = create_session_factory(app.state.engine)
        logger.info("paygate starting up (processor=%s)", settings.base_url)

    @app.on_event("shutdown")
    async def on_shutdown():
        await drain_detached()
        await app.state.processor.aclose()
        if app.state.engine is not None:
            try:
                await app.state.engine.dispose()
            except Exception:
                logger.exception("Error disposing engine on shutdown")
        logger.info("paygate shutting down")

    return app


def main() -> None:
    uvicorn.run(
        "paygate.app:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    main()

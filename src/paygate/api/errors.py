"""
Map paygate errors to JSON responses.

Body shape: {"error": <code>, "detail": <message>, ...extra}.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import PaygateError, UpstreamUnknownOutcome, ValidationError
from ..logging_config import get_logger

logger = get_logger("paygate.api")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaygateError)
    async def handle_paygate_error(request: Request, exc: PaygateError):
        if isinstance(exc, UpstreamUnknownOutcome):
            logger.error("%s %s -> unknown transfer outcome reference=%s", request.method, request.url.path, exc.reference)
        elif exc.status_code >= 500:
            logger.error("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
        else:
            logger.info("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        ]
        body = ValidationError("; ".join(problems) or "Invalid request", fields=problems).to_dict()
        return JSONResponse(status_code=ValidationError.status_code, content=jsonable_encoder(body))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR", "detail": "Internal server error"})

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from simflow.api.v1.router import v1_router
from simflow.core.config import get_settings
from simflow.core.logging import configure_logging
from simflow.core.middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)


async def _database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # services have already rolled back; nothing from this request was kept
    rid = getattr(request.state, "request_id", None)
    logger.exception("[db] %s %s failed", request.method, request.url.path, extra={"request_id": rid})
    status = 503 if isinstance(exc, OperationalError) else 500
    return JSONResponse(
        status_code=status,
        content={"detail": {"code": "DatabaseError", "message": "The operation was not applied.", "requestId": rid}},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    app.add_exception_handler(SQLAlchemyError, _database_error)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()

import logging
import os
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bufe_shared import (
    RequestIDMiddleware,
    add_standard_health,
    configure_cors,
    get_request_id,
    register_startup,
    setup_json_logging,
)

from . import auth, closing, costs, orders, payments
from .config import ALLOWED_ORIGINS, ENV, SERVICE_NAME, is_prod_env
from .db import init_db, ping

_ENABLE_DOCS = ENV in ("dev", "test")

app = FastAPI(
    title=SERVICE_NAME,
    version="0.1.0",
    docs_url="/docs" if _ENABLE_DOCS else None,
    redoc_url=None,
    openapi_url="/openapi.json" if _ENABLE_DOCS else None,
)
setup_json_logging(os.getenv("LOG_LEVEL", "INFO"))
app.add_middleware(RequestIDMiddleware)
configure_cors(app, ALLOWED_ORIGINS)
add_standard_health(app, check=ping)

log = logging.getLogger("bufe.errors")


def _error_payload(detail: Any, status_code: int) -> dict:
    if status_code >= 500 and is_prod_env():
        detail = "internal error"
    payload: dict[str, Any] = {"detail": detail}
    rid = get_request_id()
    if status_code >= 500 and rid:
        payload["request_id"] = rid
    return payload


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.detail, exc.status_code),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(SQLAlchemyError)
async def _storage_exception_handler(request: Request, exc: SQLAlchemyError):
    log.exception("storage error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content=_error_payload(str(exc), 500))


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("unhandled exception", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content=_error_payload(str(exc), 500))


api = APIRouter(prefix="/api")
api.include_router(auth.router)
api.include_router(orders.router)
api.include_router(payments.router)
api.include_router(closing.router)
api.include_router(costs.router)
app.include_router(api)


@register_startup(app)
def _startup():
    init_db()

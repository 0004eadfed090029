import os
from collections.abc import Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse


def add_standard_health(app: FastAPI, check: Callable[[], None] | None = None, env_key: str = "ENV"):
    """
    Register GET /health. When `check` is given it is called on every probe;
    if it raises, the endpoint answers 503 with status "degraded".
    """

    @app.get("/health")
    def _health():
        body = {
            "status": "ok",
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
        if check is not None:
            try:
                check()
                body["database"] = "ok"
            except Exception as exc:
                body["status"] = "degraded"
                body["database"] = type(exc).__name__
                return JSONResponse(status_code=503, content=body)
        return body

from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI


def register_startup(app: FastAPI) -> Callable[[Callable], Callable]:
    """
    Register a startup hook without using FastAPI's deprecated @on_event API.
    The hook runs before any lifespan already installed on the app.
    Usage:
        @register_startup(app)
        def _startup(): ...
    """
    def decorator(func: Callable) -> Callable:
        inner = app.router.lifespan_context

        @asynccontextmanager
        async def _lifespan(a):
            func()
            async with inner(a) as state:
                yield state

        app.router.lifespan_context = _lifespan
        return func
    return decorator

import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENV", "test")
# Keep the module-level engine off the filesystem; tests use their own engines.
os.environ.setdefault("BUFE_DB_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture()
def engine():
    """
    Isolated in-memory SQLite engine with the full schema. StaticPool keeps
    one connection so every session (and the TestClient threadpool) sees
    the same database.
    """
    from apps.bufe.app.db import init_db, make_engine

    eng = make_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture(scope="session")
def app():
    from apps.bufe.app.main import app as bufe_app

    return bufe_app


@pytest.fixture()
def client(app, engine):
    """
    TestClient whose requests run against the per-test engine. Used without
    the context manager so the startup hook does not touch the default DB.
    """
    from apps.bufe.app.db import get_session

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


class _TokenAuth:
    """Bearer header helper for a given role."""

    def __init__(self, username: str, role: str):
        self.username = username
        self.role = role

    def headers(self) -> Dict[str, str]:
        from apps.bufe.app.auth import issue_token

        return {"Authorization": f"Bearer {issue_token(self.username, self.role)}"}


@pytest.fixture()
def admin_auth() -> _TokenAuth:
    return _TokenAuth("kasa", "admin")


@pytest.fixture()
def superadmin_auth() -> _TokenAuth:
    return _TokenAuth("patron", "superadmin")

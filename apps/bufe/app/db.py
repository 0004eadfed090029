import logging

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .config import DB_BUSY_TIMEOUT, DB_URL
from .models import Base

log = logging.getLogger("bufe.db")


def make_engine(url: str = DB_URL, **kwargs) -> Engine:
    """
    SQLite engine usable from FastAPI's threadpool. Writers queue on the
    database lock (busy timeout) instead of failing immediately, which is
    what serializes the till's multi-statement operations.
    """
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", DB_BUSY_TIMEOUT)
    eng = create_engine(url, future=True, connect_args=connect_args, **kwargs)
    if eng.dialect.name == "sqlite":
        event.listen(eng, "connect", _sqlite_pragmas)
    return eng


def _sqlite_pragmas(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys = ON")
    cur.close()


engine = make_engine()


def get_session():
    with Session(engine) as s:
        yield s


def ping() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


# Columns added after the first release of the orders table. Databases
# created by older builds get them back-filled on startup.
_ORDER_COLUMNS = [
    ("accounted", "INTEGER DEFAULT 0"),
    ("takeaway_seq", "INTEGER"),
    ("parent_order_id", "INTEGER"),
    ("total_overridden", "INTEGER DEFAULT 0"),
]


def init_db(eng: Engine = None) -> None:
    eng = eng or engine
    Base.metadata.create_all(eng)
    insp = inspect(eng)
    cols = {c["name"] for c in insp.get_columns("orders")}
    for col, ddl in _ORDER_COLUMNS:
        if col in cols:
            continue
        with eng.begin() as conn:
            conn.execute(text(f"ALTER TABLE orders ADD COLUMN {col} {ddl}"))
        log.info("added missing column", extra={"table": "orders", "column": col})

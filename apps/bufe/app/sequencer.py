from datetime import date

from sqlalchemy import String, func, literal, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .models import DailyClosing, Order, TakeawayCounter, on_day, unaccounted


def _epoch(key: str):
    return (
        select(func.count(DailyClosing.id))
        .where(DailyClosing.closing_date == key)
        .scalar_subquery()
    )


def next_takeaway_seq(s: Session, day: date) -> int:
    """
    Reserve the next takeaway display number for `day`.

    Numbers count up over the day's unaccounted takeaway orders and restart
    at 1 once an end-of-day run has accounted them. The counter row is keyed
    by (day, number of closings for the day) and bumped with a single
    INSERT .. ON CONFLICT DO UPDATE, so the write lock is taken before any
    value is read. Callers insert the order in the same transaction.
    """
    key = day.isoformat()
    seed = (
        select(
            literal(key, String),
            _epoch(key),
            func.coalesce(func.max(Order.takeaway_seq), 0) + 1,
        )
        .where(on_day(day), unaccounted())
    )
    stmt = (
        sqlite_insert(TakeawayCounter)
        .from_select(["business_date", "epoch", "last_seq"], seed)
        .on_conflict_do_update(
            index_elements=["business_date", "epoch"],
            set_={"last_seq": TakeawayCounter.last_seq + 1},
        )
    )
    s.execute(stmt)
    return s.execute(
        select(TakeawayCounter.last_seq).where(
            TakeawayCounter.business_date == key,
            TakeawayCounter.epoch == _epoch(key),
        )
    ).scalar_one()

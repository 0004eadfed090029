import logging
from calendar import monthrange
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, delete, false, func, select, true, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import require_role, require_token
from .config import business_today
from .db import get_session
from .models import DailyClosing, Order, OrderItem, TakeawayCounter, day_bounds, on_day, unaccounted
from .numbers import money, to_int

log = logging.getLogger("bufe.closing")

router = APIRouter()

_NO_SYNC = {"execution_options": {"synchronize_session": False}}


class RevenueOut(BaseModel):
    date: str
    daily_revenue: float


class EndOfDayOut(BaseModel):
    message: str
    closing_date: str
    archived_amount: float


class ClosingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    closing_date: str
    total_amount: float
    created_at: Optional[datetime] = None


class CleanupReq(BaseModel):
    month: Optional[Union[int, str]] = None
    year: Optional[Union[int, str]] = None
    start: Optional[str] = None
    end: Optional[str] = None


class CleanupOut(BaseModel):
    dailyClosingsDeleted: int
    orderItemsDeleted: int
    ordersDeleted: int


def parse_day(raw: Optional[str], field: str = "date") -> date:
    try:
        return date.fromisoformat(raw.strip())
    except (AttributeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def resolve_day(raw: Optional[str]) -> date:
    """The business day an endpoint works on: `?date=` when given, else today."""
    if raw is None or not raw.strip():
        return business_today()
    return parse_day(raw)


def resolve_period(
    month: Optional[Union[int, str]], year: Optional[Union[int, str]], start: Optional[str], end: Optional[str]
) -> Optional[Tuple[date, date]]:
    """
    Inclusive (first, last) day for a month/year pair or a start/end pair.
    Month/year wins when both are given; None when neither is complete.
    """
    if month and year:
        m, y = to_int(month), to_int(year)
        if not 1 <= m <= 12 or y < 1:
            raise HTTPException(status_code=400, detail="invalid month/year")
        return date(y, m, 1), date(y, m, monthrange(y, m)[1])
    if start and end:
        first, last = parse_day(start, "start"), parse_day(end, "end")
        if last < first:
            raise HTTPException(status_code=400, detail="end before start")
        return first, last
    return None


def _orders_in(first: date, last: date):
    lo, _ = day_bounds(first)
    _, hi = day_bounds(last)
    return and_(Order.order_date >= lo, Order.order_date < hi)


def _closings_in(first: date, last: date):
    return and_(
        DailyClosing.closing_date >= first.isoformat(),
        DailyClosing.closing_date <= last.isoformat(),
    )


def _counters_in(first: date, last: date):
    return and_(
        TakeawayCounter.business_date >= first.isoformat(),
        TakeawayCounter.business_date <= last.isoformat(),
    )


def compute_daily_revenue(s: Session, day: date) -> float:
    """
    Live takings of the day: payment minus change over closed, unaccounted
    orders. Orders without a recorded payment count with their total; a
    negative net (change larger than payment) counts as 0.
    """
    rows = s.execute(
        select(Order.payment_received, Order.change_given, Order.total_amount).where(
            on_day(day), Order.is_closed == true(), unaccounted()
        )
    ).all()
    revenue = 0.0
    for payment, change, total in rows:
        net = (total or 0.0) if payment is None else payment - (change or 0.0)
        revenue += max(net, 0.0)
    return money(revenue)


@router.get("/daily-revenue", response_model=RevenueOut)
def daily_revenue(date: Optional[str] = None, s: Session = Depends(get_session)):
    day = resolve_day(date)
    return RevenueOut(date=day.isoformat(), daily_revenue=compute_daily_revenue(s, day))


def _force_close(day: date):
    return (
        update(Order)
        .where(on_day(day), Order.is_closed == false())
        .values(
            is_closed=True,
            payment_received=func.coalesce(Order.payment_received, Order.total_amount),
            change_given=func.coalesce(Order.change_given, 0.0),
        )
        .execution_options(synchronize_session=False)
    )


def run_end_of_day(s: Session, day: date) -> float:
    """
    Close the books for `day` in one transaction: close what is still open
    (assuming it was paid in full), archive the total of the unaccounted
    orders, then mark every order of the day accounted. Returns the archived
    amount. Nothing is written if any step fails.
    """
    key = day.isoformat()
    try:
        forced = s.execute(_force_close(day)).rowcount
        archived = s.execute(
            select(func.coalesce(func.sum(Order.total_amount), 0.0)).where(on_day(day), unaccounted())
        ).scalar_one()
        archived = money(float(archived))
        s.add(DailyClosing(closing_date=key, total_amount=archived))
        s.flush()
        s.execute(_force_close(day))
        s.execute(
            update(Order)
            .where(on_day(day))
            .values(accounted=True)
            .execution_options(synchronize_session=False)
        )
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        raise
    log.info(
        "end of day archived",
        extra={"closing_date": key, "archived_amount": archived, "force_closed": forced},
    )
    return archived


@router.post("/end-of-day", response_model=EndOfDayOut)
def end_of_day(date: Optional[str] = None, s: Session = Depends(get_session), user: dict = Depends(require_token)):
    day = resolve_day(date)
    archived = run_end_of_day(s, day)
    return EndOfDayOut(message="end of day recorded", closing_date=day.isoformat(), archived_amount=archived)


@router.get("/daily-closings", response_model=List[ClosingOut])
def list_daily_closings(
    month: Optional[str] = None,
    year: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    s: Session = Depends(get_session),
    user: dict = Depends(require_token),
):
    stmt = select(DailyClosing)
    period = resolve_period(month, year, start, end)
    if period:
        stmt = stmt.where(_closings_in(*period))
    stmt = stmt.order_by(DailyClosing.closing_date.desc(), DailyClosing.id.desc())
    return [ClosingOut.model_validate(c) for c in s.execute(stmt).scalars().all()]


@router.post("/daily-closings/cleanup", response_model=CleanupOut)
def cleanup_daily_closings(
    req: CleanupReq,
    s: Session = Depends(get_session),
    user: dict = Depends(require_role("superadmin")),
):
    """Delete a period's closings together with its orders and their items."""
    period = resolve_period(req.month, req.year, req.start, req.end)
    if not period:
        raise HTTPException(status_code=400, detail="month/year or start/end required")
    order_ids = select(Order.id).where(_orders_in(*period))
    try:
        closings = s.execute(delete(DailyClosing).where(_closings_in(*period)), **_NO_SYNC).rowcount
        items = s.execute(delete(OrderItem).where(OrderItem.order_id.in_(order_ids)), **_NO_SYNC).rowcount
        orders = s.execute(delete(Order).where(_orders_in(*period)), **_NO_SYNC).rowcount
        # Counter epochs are closing counts; stale rows would resume old numbering.
        s.execute(delete(TakeawayCounter).where(_counters_in(*period)), **_NO_SYNC)
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        raise
    log.warning(
        "closings cleaned up",
        extra={
            "period_start": period[0].isoformat(),
            "period_end": period[1].isoformat(),
            "closings": closings,
            "order_items": items,
            "orders": orders,
            "user": user.get("sub"),
        },
    )
    return CleanupOut(dailyClosingsDeleted=closings, orderItemsDeleted=items, ordersDeleted=orders)

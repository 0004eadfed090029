import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import local_now
from .db import get_session
from .models import ORDER_TYPES, Order, OrderItem
from .numbers import LenientFloat, OptionalNumber, money, to_int, to_number
from .orders import OrderOut, get_order_or_404, item_sum

log = logging.getLogger("bufe.payments")

router = APIRouter()

# Submitted totals within this distance of the item sum are rounding noise.
OVERRIDE_TOLERANCE = 0.005


class CloseReq(BaseModel):
    total_amount: LenientFloat = 0.0
    payment_received: LenientFloat = 0.0
    change_given: LenientFloat = 0.0
    is_closed: Optional[bool] = True


class PartialPaymentReq(BaseModel):
    items: Any = None
    amount: OptionalNumber = None
    payment: OptionalNumber = None
    change: OptionalNumber = None
    table_number: OptionalNumber = None
    order_type: Optional[str] = None
    description: Optional[str] = None


class PartialPaymentOut(BaseModel):
    partial_order_id: int
    total_amount: float
    payment_received: float
    change_given: float


class PartialPaymentsOut(BaseModel):
    order_id: int
    item_total: float
    payment_received: float
    partials_total: float
    partials: List[OrderOut]


@router.put("/orders/{order_id}", response_model=OrderOut)
def close_order(order_id: int, req: CloseReq, s: Session = Depends(get_session)):
    """
    Checkout. The till's figures are stored as given (full overwrite): the
    cashier may settle for less or more than the item sum. Such settlements
    are flagged with total_overridden so they stay visible in reports.
    """
    o = get_order_or_404(s, order_id)
    items_total = item_sum(s, order_id)
    overridden = abs(req.total_amount - items_total) > OVERRIDE_TOLERANCE
    o.total_amount = req.total_amount
    o.payment_received = req.payment_received
    o.change_given = req.change_given
    o.is_closed = bool(req.is_closed)
    o.total_overridden = overridden
    s.commit()
    if overridden:
        log.warning(
            "checkout total differs from items",
            extra={"order_id": order_id, "submitted_total": req.total_amount, "items_total": items_total},
        )
    s.refresh(o)
    return OrderOut.model_validate(o)


def sanitize_items(raw: Any) -> List[dict]:
    """
    Normalise partial-payment lines. Accepts either `product_name`/`unit_price`
    or the till's `name`/`price`; lines without a name or quantity are dropped.
    """
    if not isinstance(raw, list) or not raw:
        raise HTTPException(status_code=400, detail="items must be a non-empty list")
    out: List[dict] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        name = entry.get("product_name") or entry.get("name")
        qty = to_int(entry.get("quantity"))
        price = entry.get("unit_price")
        if price is None:
            price = entry.get("price")
        price = to_number(price)
        if not name or qty <= 0:
            continue
        out.append(
            {
                "product_name": str(name),
                "quantity": qty,
                "unit_price": price,
                "total_price": price * qty,
            }
        )
    if not out:
        raise HTTPException(status_code=400, detail="no valid items")
    return out


@router.post("/orders/{order_id}/partial-payment", response_model=PartialPaymentOut)
def record_partial_payment(order_id: int, req: PartialPaymentReq, s: Session = Depends(get_session)):
    items = sanitize_items(req.items)
    computed_total = sum(it["total_price"] for it in items)
    total_amount = req.amount if req.amount is not None and req.amount > 0 else money(computed_total)
    payment = req.payment if req.payment is not None and req.payment > 0 else total_amount
    change = req.change if req.change is not None else payment - total_amount

    parent = get_order_or_404(s, order_id)
    table_number = parent.table_number if req.table_number is None else int(req.table_number)
    order_type = (req.order_type or parent.order_type or "").strip().lower()
    if order_type not in ORDER_TYPES:
        raise HTTPException(status_code=400, detail="order_type must be table or takeaway")
    try:
        child = Order(
            table_number=table_number,
            order_type=order_type,
            description=req.description or f"Partial payment #{order_id}",
            total_amount=total_amount,
            payment_received=payment,
            change_given=change,
            order_date=local_now(),
            is_closed=True,
            accounted=False,
            parent_order_id=order_id,
        )
        s.add(child)
        s.flush()
        s.add_all(OrderItem(order_id=child.id, **it) for it in items)
        s.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(payment_received=func.coalesce(Order.payment_received, 0.0) + total_amount)
            .execution_options(synchronize_session=False)
        )
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        raise
    log.info(
        "partial payment recorded",
        extra={"order_id": order_id, "partial_order_id": child.id, "amount": total_amount},
    )
    return PartialPaymentOut(
        partial_order_id=child.id,
        total_amount=total_amount,
        payment_received=payment,
        change_given=change,
    )


@router.get("/orders/{order_id}/partial-payments", response_model=PartialPaymentsOut)
def list_partial_payments(order_id: int, s: Session = Depends(get_session)):
    """Child tickets of an order, with the figures needed to reconcile them by hand."""
    parent = get_order_or_404(s, order_id)
    partials = (
        s.execute(select(Order).where(Order.parent_order_id == order_id).order_by(Order.id))
        .scalars()
        .all()
    )
    return PartialPaymentsOut(
        order_id=order_id,
        item_total=item_sum(s, order_id),
        payment_received=parent.payment_received or 0.0,
        partials_total=money(sum(p.total_amount or 0.0 for p in partials)),
        partials=[OrderOut.model_validate(p) for p in partials],
    )

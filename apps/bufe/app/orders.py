import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, false, func, select, true
from sqlalchemy.orm import Session

from .auth import require_token
from .config import local_now
from .db import get_session
from .models import ORDER_TYPES, Order, OrderItem
from .numbers import LenientFloat, LenientInt, OptionalNumber
from .sequencer import next_takeaway_seq

log = logging.getLogger("bufe.orders")

router = APIRouter()

NOTE_MAX = 500


class OrderCreate(BaseModel):
    order_type: str = "table"
    table_number: OptionalNumber = None
    description: Optional[str] = ""


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    table_number: Optional[int] = None
    order_type: str
    description: str
    total_amount: float
    payment_received: Optional[float] = None
    change_given: Optional[float] = None
    order_date: datetime
    is_closed: bool
    accounted: Optional[bool] = None
    takeaway_seq: Optional[int] = None
    parent_order_id: Optional[int] = None
    total_overridden: bool = False


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_price: float


class OrderDetail(OrderOut):
    items: List[ItemOut] = []


class ItemCreate(BaseModel):
    product_name: Optional[str] = None
    quantity: LenientInt = 0
    unit_price: LenientFloat = 0.0


class ItemUpdate(BaseModel):
    quantity: LenientInt = 0


class NoteReq(BaseModel):
    note: Any = None


class NoteOut(BaseModel):
    note: str


class MessageOut(BaseModel):
    message: str


def get_order_or_404(s: Session, order_id: int) -> Order:
    o = s.get(Order, order_id)
    if not o:
        raise HTTPException(status_code=404, detail="order not found")
    return o


def item_sum(s: Session, order_id: int) -> float:
    total = s.execute(
        select(func.coalesce(func.sum(OrderItem.total_price), 0.0)).where(OrderItem.order_id == order_id)
    ).scalar_one()
    return float(total)


def recompute_total(s: Session, order_id: int) -> float:
    """
    Set orders.total_amount to the sum of its items. Runs inside the caller's
    transaction, after the item mutation has been flushed.
    """
    s.flush()
    o = s.get(Order, order_id)
    o.total_amount = item_sum(s, order_id)
    return o.total_amount


@router.post("/orders", response_model=OrderOut)
def create_order(req: OrderCreate, s: Session = Depends(get_session)):
    order_type = (req.order_type or "").strip().lower()
    if order_type not in ORDER_TYPES:
        raise HTTPException(status_code=400, detail="order_type must be table or takeaway")
    now = local_now()
    o = Order(
        order_type=order_type,
        table_number=None,
        description=(req.description or "")[:NOTE_MAX],
        total_amount=0.0,
        order_date=now,
        is_closed=False,
        accounted=False,
    )
    if order_type == "takeaway":
        o.takeaway_seq = next_takeaway_seq(s, now.date())
    elif req.table_number is not None:
        o.table_number = int(req.table_number)
    s.add(o)
    s.commit()
    s.refresh(o)
    log.info(
        "order created",
        extra={"order_id": o.id, "order_type": o.order_type, "takeaway_seq": o.takeaway_seq},
    )
    return OrderOut.model_validate(o)


@router.get("/orders", response_model=List[OrderOut])
def list_orders(status: Optional[str] = None, s: Session = Depends(get_session)):
    stmt = select(Order)
    if status == "open":
        stmt = stmt.where(Order.is_closed == false())
    elif status == "closed":
        stmt = stmt.where(Order.is_closed == true())
    stmt = stmt.order_by(Order.order_date.desc(), Order.id.desc())
    return [OrderOut.model_validate(o) for o in s.execute(stmt).scalars().all()]


@router.get("/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: int, s: Session = Depends(get_session)):
    return OrderDetail.model_validate(get_order_or_404(s, order_id))


@router.put("/orders/{order_id}/note", response_model=NoteOut)
def update_note(order_id: int, req: NoteReq, s: Session = Depends(get_session)):
    o = get_order_or_404(s, order_id)
    raw = req.note if isinstance(req.note, str) else ""
    o.description = raw.replace("\r", "")[:NOTE_MAX]
    s.commit()
    return NoteOut(note=o.description)


@router.delete("/orders/{order_id}", response_model=MessageOut)
def delete_order(order_id: int, s: Session = Depends(get_session), user: dict = Depends(require_token)):
    o = get_order_or_404(s, order_id)
    s.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
    s.delete(o)
    s.commit()
    log.info("order deleted", extra={"order_id": order_id, "user": user.get("sub")})
    return MessageOut(message="order deleted")


# --- items ---


@router.post("/orders/{order_id}/items", response_model=ItemOut)
def add_item(order_id: int, req: ItemCreate, s: Session = Depends(get_session)):
    get_order_or_404(s, order_id)
    name = (req.product_name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="product_name required")
    if req.quantity <= 0:
        raise HTTPException(status_code=400, detail="quantity must be positive")
    it = OrderItem(
        order_id=order_id,
        product_name=name,
        quantity=req.quantity,
        unit_price=req.unit_price,
        total_price=req.quantity * req.unit_price,
    )
    s.add(it)
    recompute_total(s, order_id)
    s.commit()
    s.refresh(it)
    return ItemOut.model_validate(it)


def _get_item_or_404(s: Session, order_id: int, item_id: int) -> OrderItem:
    it = s.get(OrderItem, item_id)
    if not it or it.order_id != order_id:
        raise HTTPException(status_code=404, detail="item not found")
    return it


@router.put("/orders/{order_id}/items/{item_id}", response_model=MessageOut)
def update_item(order_id: int, item_id: int, req: ItemUpdate, s: Session = Depends(get_session)):
    it = _get_item_or_404(s, order_id, item_id)
    if req.quantity <= 0:
        s.delete(it)
        msg = "item removed"
    else:
        it.quantity = req.quantity
        it.total_price = req.quantity * it.unit_price
        msg = "item updated"
    recompute_total(s, order_id)
    s.commit()
    return MessageOut(message=msg)


@router.delete("/orders/{order_id}/items/{item_id}", response_model=MessageOut)
def delete_item(order_id: int, item_id: int, s: Session = Depends(get_session)):
    it = _get_item_or_404(s, order_id, item_id)
    s.delete(it)
    recompute_total(s, order_id)
    s.commit()
    return MessageOut(message="item deleted")

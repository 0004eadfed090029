import pytest
from fastapi import HTTPException
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError

import apps.bufe.app.orders as orders  # type: ignore[import]
import apps.bufe.app.payments as payments  # type: ignore[import]
from apps.bufe.app.models import Order, OrderItem  # type: ignore[import]


def _order_with_items(s, table_number=3) -> int:
    oid = orders.create_order(req=orders.OrderCreate(order_type="table", table_number=table_number), s=s).id
    for name, qty, price in (("Tost", 2, 10), ("Ayran", 1, 5)):
        orders.add_item(
            order_id=oid,
            req=orders.ItemCreate(product_name=name, quantity=qty, unit_price=price),
            s=s,
        )
    return oid


def _partial(s, order_id, **body):
    return payments.record_partial_payment(order_id=order_id, req=payments.PartialPaymentReq(**body), s=s)


def test_close_overwrites_amounts(session):
    oid = _order_with_items(session)
    session.get(Order, oid).payment_received = 99
    session.commit()

    out = payments.close_order(
        order_id=oid,
        req=payments.CloseReq(total_amount=25, payment_received=50, change_given=25, is_closed=True),
        s=session,
    )
    assert out.is_closed is True
    assert out.total_amount == 25
    assert out.payment_received == 50
    assert out.change_given == 25
    assert out.total_overridden is False


def test_close_flags_discounted_total(session):
    oid = _order_with_items(session)
    out = payments.close_order(
        order_id=oid,
        req=payments.CloseReq(total_amount="20", payment_received="20", change_given=""),
        s=session,
    )
    assert out.total_amount == 20
    assert out.change_given == 0
    assert out.total_overridden is True


def test_close_unknown_order(session):
    with pytest.raises(HTTPException) as exc:
        payments.close_order(order_id=404, req=payments.CloseReq(), s=session)
    assert exc.value.status_code == 404


def test_partial_payment_creates_child_ticket(session):
    oid = _order_with_items(session, table_number=8)
    out = _partial(session, oid, items=[{"name": "Tost", "quantity": 1, "price": 10}])
    assert out.total_amount == 10
    assert out.payment_received == 10
    assert out.change_given == 0

    child = orders.get_order(order_id=out.partial_order_id, s=session)
    assert child.is_closed is True
    assert child.accounted is False
    assert child.table_number == 8
    assert child.order_type == "table"
    assert child.parent_order_id == oid
    assert child.description == f"Partial payment #{oid}"
    assert [(i.product_name, i.quantity, i.total_price) for i in child.items] == [("Tost", 1, 10)]

    parent = orders.get_order(order_id=oid, s=session)
    assert parent.payment_received == 10
    # the parent keeps its items and its item total
    assert parent.total_amount == 25
    assert len(parent.items) == 2
    assert parent.is_closed is False


def test_partial_payments_accumulate_on_parent(session):
    oid = _order_with_items(session)
    _partial(session, oid, items=[{"product_name": "Tost", "quantity": 1, "unit_price": 10}])
    second = _partial(
        session,
        oid,
        items=[{"product_name": "Ayran", "quantity": 1, "unit_price": 5}],
        amount=7,
        payment=20,
        description="masa 3 ikinci kisi",
    )
    assert second.total_amount == 7
    assert second.payment_received == 20
    assert second.change_given == 13
    assert orders.get_order(order_id=second.partial_order_id, s=session).description == "masa 3 ikinci kisi"

    summary = payments.list_partial_payments(order_id=oid, s=session)
    assert summary.payment_received == 17
    assert summary.partials_total == 17
    assert summary.item_total == 25
    assert len(summary.partials) == 2


def test_partial_payment_explicit_change_wins(session):
    oid = _order_with_items(session)
    out = _partial(session, oid, items=[{"name": "Tost", "quantity": 2, "price": 10}], payment=50, change="0")
    assert out.total_amount == 20
    assert out.change_given == 0


def test_partial_payment_overrides_type_and_table(session):
    oid = _order_with_items(session)
    out = _partial(
        session,
        oid,
        items=[{"name": "Tost", "quantity": 1, "price": 10}],
        order_type="takeaway",
        table_number=12,
    )
    child = orders.get_order(order_id=out.partial_order_id, s=session)
    assert child.order_type == "takeaway"
    assert child.table_number == 12


def test_partial_payment_rejects_bad_items(session):
    oid = _order_with_items(session)
    for items in (None, [], "Tost", [{"name": "", "quantity": 1}, {"name": "Tost", "quantity": 0}]):
        with pytest.raises(HTTPException) as exc:
            _partial(session, oid, items=items)
        assert exc.value.status_code == 400
    assert orders.get_order(order_id=oid, s=session).payment_received is None


def test_partial_payment_unknown_parent(session):
    with pytest.raises(HTTPException) as exc:
        _partial(session, 777, items=[{"name": "Tost", "quantity": 1, "price": 10}])
    assert exc.value.status_code == 404


@pytest.mark.parametrize("raw", [False, "false", "0", 0, "no", "off", None])
def test_close_parses_falsy_is_closed(session, raw):
    oid = _order_with_items(session)
    out = payments.close_order(
        order_id=oid,
        req=payments.CloseReq(total_amount=25, payment_received=25, is_closed=raw),
        s=session,
    )
    assert out.is_closed is False


def test_close_rejects_garbage_is_closed():
    with pytest.raises(ValueError):
        payments.CloseReq(is_closed="maybe")


def test_partial_payment_rejects_unknown_type(session):
    oid = _order_with_items(session)
    with pytest.raises(HTTPException) as exc:
        _partial(session, oid, items=[{"name": "Tost", "quantity": 1, "price": 10}], order_type="delivery")
    assert exc.value.status_code == 400
    assert session.execute(select(Order).where(Order.parent_order_id == oid)).scalars().all() == []

    out = _partial(session, oid, items=[{"name": "Tost", "quantity": 1, "price": 10}], order_type=" TakeAway ")
    assert orders.get_order(order_id=out.partial_order_id, s=session).order_type == "takeaway"


def test_partial_payment_rolls_back_on_storage_error(session):
    oid = _order_with_items(session)

    def _fail(mapper, connection, target):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    event.listen(OrderItem, "before_insert", _fail)
    try:
        with pytest.raises(OperationalError):
            _partial(session, oid, items=[{"name": "Tost", "quantity": 1, "price": 10}])
    finally:
        event.remove(OrderItem, "before_insert", _fail)

    session.expire_all()
    assert session.execute(select(Order).where(Order.parent_order_id == oid)).scalars().all() == []
    assert session.get(Order, oid).payment_received is None
    assert len(session.execute(select(OrderItem)).scalars().all()) == 2

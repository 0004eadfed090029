import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

import apps.bufe.app.orders as orders  # type: ignore[import]
from apps.bufe.app.models import Order, OrderItem  # type: ignore[import]


def _new_table_order(s, table_number=4) -> int:
    out = orders.create_order(req=orders.OrderCreate(order_type="table", table_number=table_number), s=s)
    return out.id


def _add(s, order_id, name, qty, price):
    return orders.add_item(
        order_id=order_id,
        req=orders.ItemCreate(product_name=name, quantity=qty, unit_price=price),
        s=s,
    )


def test_create_table_order_defaults(session):
    out = orders.create_order(
        req=orders.OrderCreate(order_type="table", table_number="7", description="cam kenari"),
        s=session,
    )
    assert out.table_number == 7
    assert out.order_type == "table"
    assert out.total_amount == 0
    assert out.is_closed is False
    assert out.accounted is False
    assert out.takeaway_seq is None
    assert out.description == "cam kenari"


def test_create_rejects_unknown_order_type(session):
    with pytest.raises(HTTPException) as exc:
        orders.create_order(req=orders.OrderCreate(order_type="delivery"), s=session)
    assert exc.value.status_code == 400


def test_takeaway_order_ignores_table_number(session):
    out = orders.create_order(req=orders.OrderCreate(order_type="takeaway", table_number=3), s=session)
    assert out.table_number is None
    assert out.takeaway_seq == 1


def test_total_follows_item_mutations(session):
    oid = _new_table_order(session)
    tost = _add(session, oid, "Tost", 2, 10)
    _add(session, oid, "Ayran", 3, 5)
    assert tost.total_price == 20
    assert orders.get_order(order_id=oid, s=session).total_amount == 35

    orders.update_item(order_id=oid, item_id=tost.id, req=orders.ItemUpdate(quantity=0), s=session)
    detail = orders.get_order(order_id=oid, s=session)
    assert detail.total_amount == 15
    assert [i.product_name for i in detail.items] == ["Ayran"]


def test_update_quantity_uses_stored_unit_price(session):
    oid = _new_table_order(session)
    it = _add(session, oid, "Kumru", 1, 45.5)
    orders.update_item(order_id=oid, item_id=it.id, req=orders.ItemUpdate(quantity="3"), s=session)
    detail = orders.get_order(order_id=oid, s=session)
    assert detail.items[0].quantity == 3
    assert detail.items[0].total_price == pytest.approx(136.5)
    assert detail.total_amount == pytest.approx(136.5)


def test_delete_last_item_resets_total_to_zero(session):
    oid = _new_table_order(session)
    it = _add(session, oid, "Cay", 2, 7.5)
    orders.delete_item(order_id=oid, item_id=it.id, s=session)
    assert orders.get_order(order_id=oid, s=session).total_amount == 0


def test_add_item_validation(session):
    oid = _new_table_order(session)
    with pytest.raises(HTTPException) as exc:
        _add(session, oid, "", 1, 10)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        _add(session, oid, "Tost", "abc", 10)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        _add(session, 9999, "Tost", 1, 10)
    assert exc.value.status_code == 404


def test_unparseable_price_becomes_zero(session):
    oid = _new_table_order(session)
    it = _add(session, oid, "Su", 2, "bedava")
    assert it.unit_price == 0
    assert it.total_price == 0


def test_item_must_belong_to_order(session):
    a = _new_table_order(session, 1)
    b = _new_table_order(session, 2)
    it = _add(session, a, "Tost", 1, 10)
    with pytest.raises(HTTPException) as exc:
        orders.delete_item(order_id=b, item_id=it.id, s=session)
    assert exc.value.status_code == 404


def test_delete_order_removes_items(session):
    oid = _new_table_order(session)
    _add(session, oid, "Tost", 1, 10)
    _add(session, oid, "Ayran", 1, 5)
    orders.delete_order(order_id=oid, s=session, user={"sub": "kasa"})
    assert session.get(Order, oid) is None
    left = session.execute(select(func.count(OrderItem.id)).where(OrderItem.order_id == oid)).scalar_one()
    assert left == 0
    with pytest.raises(HTTPException) as exc:
        orders.delete_order(order_id=oid, s=session, user={"sub": "kasa"})
    assert exc.value.status_code == 404


def test_note_is_normalised(session):
    oid = _new_table_order(session)
    out = orders.update_note(order_id=oid, req=orders.NoteReq(note="az pismis\r\nsogansiz" + "x" * 600), s=session)
    assert "\r" not in out.note
    assert len(out.note) == 500
    assert out.note.startswith("az pismis\nsogansiz")
    assert orders.get_order(order_id=oid, s=session).description == out.note

    cleared = orders.update_note(order_id=oid, req=orders.NoteReq(note=42), s=session)
    assert cleared.note == ""


def test_list_filters_by_status(session):
    open_id = _new_table_order(session, 1)
    closed_id = _new_table_order(session, 2)
    session.get(Order, closed_id).is_closed = True
    session.commit()

    assert [o.id for o in orders.list_orders(status="open", s=session)] == [open_id]
    assert [o.id for o in orders.list_orders(status="closed", s=session)] == [closed_id]
    # newest first
    assert [o.id for o in orders.list_orders(status=None, s=session)] == [closed_id, open_id]

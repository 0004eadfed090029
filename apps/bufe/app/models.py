from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    and_,
    false,
    func,
    or_,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

ORDER_TYPES = ("table", "takeaway")


class Base(DeclarativeBase):
    pass


class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_number: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    order_type: Mapped[str] = mapped_column(String(16))  # table/takeaway
    description: Mapped[str] = mapped_column(String(500), default="")
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    payment_received: Mapped[Optional[float]] = mapped_column(Float, default=None)
    change_given: Mapped[Optional[float]] = mapped_column(Float, default=None)
    order_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False)
    accounted: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)
    takeaway_seq: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    parent_order_id: Mapped[Optional[int]] = mapped_column(Integer, default=None, index=True)
    total_overridden: Mapped[bool] = mapped_column(Boolean, default=False)
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    # Free text, not a reference to a product row.
    product_name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    total_price: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.now())
    order: Mapped[Order] = relationship(back_populates="items")


class DailyClosing(Base):
    __tablename__ = "daily_closings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    closing_date: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.now())


class TakeawayCounter(Base):
    __tablename__ = "takeaway_counters"
    business_date: Mapped[str] = mapped_column(String(10), primary_key=True)
    # Number of closings already run for the date; a new epoch restarts numbering.
    epoch: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_seq: Mapped[int] = mapped_column(Integer, default=0)


class StockCode(Base):
    __tablename__ = "stock_codes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stock_code: Mapped[str] = mapped_column(String(32), unique=True)
    product_name: Mapped[str] = mapped_column(String(200))
    brand: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    unit: Mapped[str] = mapped_column(String(16), default="adet")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class StockPurchase(Base):
    __tablename__ = "stock_purchases"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stock_code_id: Mapped[int] = mapped_column(Integer, ForeignKey("stock_codes.id"), index=True)
    package_count: Mapped[float] = mapped_column(Float, default=1.0)
    package_content: Mapped[float] = mapped_column(Float, default=1.0)
    total_price: Mapped[float] = mapped_column(Float, default=0.0)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    per_item_price: Mapped[float] = mapped_column(Float, default=0.0)
    purchase_date: Mapped[str] = mapped_column(String(10))  # YYYY-MM-DD


class ProductCostRecipe(Base):
    __tablename__ = "product_cost_recipes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_name: Mapped[str] = mapped_column(String(200), unique=True)
    notes: Mapped[str] = mapped_column(String(1000), default="")
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.now())
    ingredients: Mapped[List["ProductCostIngredient"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="ProductCostIngredient.id",
    )


class ProductCostIngredient(Base):
    __tablename__ = "product_cost_ingredients"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("product_cost_recipes.id", ondelete="CASCADE"), index=True
    )
    stock_code_id: Mapped[int] = mapped_column(Integer, ForeignKey("stock_codes.id"))
    quantity: Mapped[float] = mapped_column(Float)
    unit_cost_override: Mapped[Optional[float]] = mapped_column(Float, default=None)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.now())
    recipe: Mapped[ProductCostRecipe] = relationship(back_populates="ingredients")


# --- shared query fragments ---


def day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def on_day(day: date):
    """Orders whose order_date falls on the given business day."""
    start, end = day_bounds(day)
    return and_(Order.order_date >= start, Order.order_date < end)


def unaccounted():
    # Rows created before the accounted column existed carry NULL.
    return or_(Order.accounted == false(), Order.accounted.is_(None))


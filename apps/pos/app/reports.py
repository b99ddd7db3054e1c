from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errors import ValidationFailed
from .models import Invoice, Order, OrderItem, Payment, Product

PERIODS = ("day", "week", "month", "year")
TOP_PRODUCTS = 8


def period_range(period: str, now: datetime) -> Tuple[datetime, datetime]:
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return start_of_day, now
    if period == "week":
        return start_of_day - timedelta(days=7), now
    if period == "month":
        return start_of_day.replace(day=1), now
    if period == "year":
        return start_of_day.replace(month=1, day=1), now
    raise ValidationFailed(f"unknown period {period!r}")


def period_summary(s: Session, start: datetime, end: datetime) -> Dict[str, object]:
    """
    Owner's period view: sales booked on orders created in the range, cash
    actually received in the range, and balances moved to customer credit.
    """
    order_filter = (Order.created_at >= start, Order.created_at <= end, Order.status != "cancelled")
    order_count = s.execute(select(func.count(Order.id)).where(*order_filter)).scalar() or 0
    sales, credit = s.execute(
        select(
            func.coalesce(func.sum(Invoice.total_cents), 0),
            func.coalesce(func.sum(Invoice.credit_cents), 0),
        )
        .join(Order, Order.id == Invoice.order_id)
        .where(*order_filter)
    ).one()
    cash = s.execute(
        select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(
            Payment.received_at >= start,
            Payment.received_at <= end,
        )
    ).scalar()

    revenue = func.sum(OrderItem.qty * OrderItem.unit_price_cents)
    rows = s.execute(
        select(OrderItem.product_id, Product.name, func.sum(OrderItem.qty), revenue)
        .join(Order, Order.id == OrderItem.order_id)
        .outerjoin(Product, Product.id == OrderItem.product_id)
        .where(*order_filter, OrderItem.status != "cancelled")
        .group_by(OrderItem.product_id, Product.name)
        .order_by(revenue.desc())
        .limit(TOP_PRODUCTS)
    ).all()
    top: List[Dict[str, object]] = [
        {"product_id": pid, "name": name or pid, "qty": int(qty or 0), "revenue_cents": int(rev or 0)}
        for pid, name, qty, rev in rows
    ]
    return {
        "from": start,
        "to": end,
        "order_count": int(order_count),
        "sales_cents": int(sales or 0),
        "cash_cents": int(cash or 0),
        "credit_cents": int(credit or 0),
        "top_products": top,
    }

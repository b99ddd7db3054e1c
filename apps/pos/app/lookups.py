from sqlalchemy.orm import Session

from .errors import CustomerNotFound, ItemNotFound, OrderNotFound, ProductNotFound
from .models import Customer, Order, OrderItem, Product

CLOSED_ORDER_STATUSES = ("closed", "cancelled")


def require_order(s: Session, order_id: str) -> Order:
    od = s.get(Order, order_id) if order_id else None
    if not od:
        raise OrderNotFound("order not found", order_id=order_id)
    return od


def require_item(s: Session, item_id: str) -> OrderItem:
    it = s.get(OrderItem, item_id) if item_id else None
    if not it:
        raise ItemNotFound("item not found", item_id=item_id)
    return it


def require_customer(s: Session, customer_id: str) -> Customer:
    c = s.get(Customer, customer_id) if customer_id else None
    if not c:
        raise CustomerNotFound("customer not found", customer_id=customer_id)
    return c


def require_product(s: Session, product_id: str) -> Product:
    p = s.get(Product, product_id) if product_id else None
    if not p or p.is_archived:
        raise ProductNotFound("product not found", product_id=product_id)
    return p


def is_closed(od: Order) -> bool:
    return od.status in CLOSED_ORDER_STATUSES

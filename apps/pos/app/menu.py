import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import InvalidAmount, ValidationFailed
from .events import append_event
from .models import STATIONS, Product

CATEGORIES = ("hot", "cold", "fresh", "shisha", "food", "other")


def create_product(
    s: Session,
    name: str,
    price_cents: int,
    actor_user_id: str,
    category: str = "other",
    station: Optional[str] = None,
) -> Product:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("product name required")
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
        raise InvalidAmount("price must be a non-negative integer", price_cents=price_cents)
    if category not in CATEGORIES:
        raise ValidationFailed(f"unknown category {category!r}")
    station = station or ("shisha" if category == "shisha" else "barista")
    if station not in STATIONS:
        raise ValidationFailed(f"unknown station {station!r}")
    p = Product(id=str(uuid.uuid4()), name=name, category=category, price_cents=price_cents, station=station, is_archived=0)
    s.add(p)
    s.flush()
    append_event(s, "product.created", actor_user_id, product_id=p.id, name=p.name, price_cents=price_cents)
    s.commit()
    s.refresh(p)
    return p


def list_products(s: Session) -> List[Product]:
    return list(s.execute(select(Product).where(Product.is_archived == 0).order_by(Product.name.asc())).scalars().all())

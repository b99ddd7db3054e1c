from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    name: str
    price_cents: int
    category: str = "other"
    station: Optional[str] = None


class ProductOut(BaseModel):
    id: str
    name: str
    category: str
    price_cents: int
    station: str
    model_config = ConfigDict(from_attributes=True)


class CustomerCreate(BaseModel):
    name: str
    phone: Optional[str] = None


class CustomerOut(BaseModel):
    id: str
    name: str
    phone: Optional[str]
    model_config = ConfigDict(from_attributes=True)


class LedgerEntryIn(BaseModel):
    amount_cents: int
    note: Optional[str] = None
    order_id: Optional[str] = None


class LedgerEntryOut(BaseModel):
    id: str
    customer_id: str
    kind: str
    amount_cents: int
    order_id: Optional[str]
    actor_user_id: Optional[str]
    note: Optional[str]
    at: datetime
    model_config = ConfigDict(from_attributes=True)


class CustomerAccountOut(BaseModel):
    customer: CustomerOut
    balance_cents: int
    entries: List[LedgerEntryOut]


class OrderCreate(BaseModel):
    table_label: Optional[str] = None


class OrderCustomerUpdate(BaseModel):
    customer_id: Optional[str] = None


class OrderOut(BaseModel):
    id: str
    table_label: Optional[str]
    created_by: str
    created_at: datetime
    status: str
    customer_id: Optional[str]
    model_config = ConfigDict(from_attributes=True)


class ItemCreate(BaseModel):
    product_id: str
    qty: int = 1
    unit_price_cents: Optional[int] = None
    station: Optional[str] = None
    notes: Optional[str] = None


class ItemOut(BaseModel):
    id: str
    order_id: str
    product_id: str
    qty: int
    unit_price_cents: int
    notes: Optional[str]
    station: str
    status: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ItemStatusUpdate(BaseModel):
    to: str


class SendItemsRequest(BaseModel):
    item_ids: List[str] = Field(default_factory=list)


class SendItemsOut(BaseModel):
    order_id: str
    sent: List[str]


class InvoiceOut(BaseModel):
    order_id: str
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    paid_cents: int
    credit_cents: int
    remaining_cents: int
    status: str


class DiscountRequest(BaseModel):
    discount_cents: int


class PaymentCreate(BaseModel):
    amount_cents: int


class PaymentOut(BaseModel):
    id: str
    order_id: str
    amount_cents: int
    received_by: str
    received_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PaymentResult(BaseModel):
    payment: PaymentOut
    invoice: InvoiceOut
    order_status: str


class SplitRequest(BaseModel):
    item_ids: List[str]


class SplitOut(BaseModel):
    source: OrderOut
    order: OrderOut
    source_invoice: InvoiceOut
    invoice: InvoiceOut


class CreditRequest(BaseModel):
    customer_id: str
    note: Optional[str] = None


class CreditOut(BaseModel):
    ok: bool = True
    entry_id: str
    amount_cents: int
    invoice: InvoiceOut


class OrderDetail(BaseModel):
    order: OrderOut
    items: List[ItemOut]
    invoice: InvoiceOut
    payments: List[PaymentOut]


class EventOut(BaseModel):
    id: str
    at: datetime
    actor_user_id: Optional[str]
    type: str
    payload: dict


class TopProduct(BaseModel):
    product_id: str
    name: str
    qty: int
    revenue_cents: int


class PeriodSummaryOut(BaseModel):
    period: str
    from_ts: datetime
    to_ts: datetime
    order_count: int
    sales_cents: int
    cash_cents: int
    credit_cents: int
    top_products: List[TopProduct]

import os
from typing import List

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ahwa_shared import (
    RequestIDMiddleware,
    add_standard_health,
    configure_cors,
    register_shutdown,
    register_startup,
    setup_json_logging,
)

from . import credit, events, invoice, items, ledger, menu, orders, payments, reports, split
from .db import Base, engine, get_session, utcnow
from .errors import ValidationFailed
from .lookups import require_customer, require_item, require_order
from .models import Invoice, Order
from .policy import (
    SessionContext,
    actor_context,
    can_apply_discount,
    can_manage_menu,
    can_take_payment,
    can_update_kitchen_item,
    can_view_reports,
    require,
)
from .schemas import (
    CreditOut,
    CreditRequest,
    CustomerAccountOut,
    CustomerCreate,
    CustomerOut,
    DiscountRequest,
    EventOut,
    InvoiceOut,
    ItemCreate,
    ItemOut,
    ItemStatusUpdate,
    LedgerEntryIn,
    LedgerEntryOut,
    OrderCreate,
    OrderCustomerUpdate,
    OrderDetail,
    OrderOut,
    PaymentCreate,
    PaymentOut,
    PaymentResult,
    PeriodSummaryOut,
    ProductCreate,
    ProductOut,
    SendItemsOut,
    SendItemsRequest,
    SplitOut,
    SplitRequest,
)

app = FastAPI(title="Ahwa POS API", version="0.1.0")
setup_json_logging()
app.add_middleware(RequestIDMiddleware)
configure_cors(app, os.getenv("ALLOWED_ORIGINS", ""))
add_standard_health(app, engine=engine)
router = APIRouter()


@register_startup(app)
def on_startup():
    Base.metadata.create_all(engine)


@register_shutdown(app)
def on_shutdown():
    engine.dispose()


AMOUNT_FIELDS = {"amount_cents", "discount_cents", "unit_price_cents", "price_cents"}


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    # Keep the till on one error shape: {"detail": {"kind", "message"}}.
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    kind = "InvalidAmount" if AMOUNT_FIELDS.intersection(fields) else "InvalidInput"
    return JSONResponse(
        status_code=400,
        content={"detail": {"kind": kind, "message": "invalid request", "fields": fields}},
    )


def _invoice_out(inv: Invoice) -> InvoiceOut:
    return InvoiceOut(
        order_id=inv.order_id,
        subtotal_cents=inv.subtotal_cents,
        discount_cents=inv.discount_cents,
        total_cents=inv.total_cents,
        paid_cents=inv.paid_cents,
        credit_cents=inv.credit_cents,
        remaining_cents=invoice.remaining_cents(inv),
        status=inv.status,
    )


def _order_detail(s: Session, od: Order) -> OrderDetail:
    inv = invoice.get_invoice(s, od.id)
    return OrderDetail(
        order=OrderOut.model_validate(od),
        items=[ItemOut.model_validate(it) for it in items.list_by_order(s, od.id)],
        invoice=_invoice_out(inv),
        payments=[PaymentOut.model_validate(p) for p in payments.list_payments(s, od.id)],
    )


# --- Menu (lookup only; menu management lives outside the till) ---
@router.post("/products", response_model=ProductOut)
def create_product(req: ProductCreate, ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    require(can_manage_menu(ctx), "only the owner can add products")
    return menu.create_product(s, req.name, req.price_cents, ctx.user_id, category=req.category, station=req.station)


@router.get("/products", response_model=List[ProductOut])
def list_products(s: Session = Depends(get_session)):
    return menu.list_products(s)


# --- Customers / ledger ---
@router.post("/customers", response_model=CustomerOut)
def create_customer(req: CustomerCreate, ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    return ledger.create_customer(s, req.name, ctx.user_id, phone=req.phone)


@router.get("/customers", response_model=List[CustomerOut])
def list_customers(s: Session = Depends(get_session)):
    return ledger.list_customers(s)


@router.get("/customers/{customer_id}", response_model=CustomerAccountOut)
def customer_account(customer_id: str, s: Session = Depends(get_session)):
    c = require_customer(s, customer_id)
    return CustomerAccountOut(
        customer=CustomerOut.model_validate(c),
        balance_cents=ledger.get_balance(s, customer_id),
        entries=[LedgerEntryOut.model_validate(e) for e in ledger.list_by_customer(s, customer_id)],
    )


@router.get("/customers/{customer_id}/ledger", response_model=List[LedgerEntryOut])
def customer_ledger(customer_id: str, s: Session = Depends(get_session)):
    require_customer(s, customer_id)
    return ledger.list_by_customer(s, customer_id)


@router.post("/customers/{customer_id}/ledger/charges", response_model=LedgerEntryOut)
def customer_charge(
    customer_id: str,
    req: LedgerEntryIn,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_take_payment(ctx), "ledger entries are for the supervisor or owner")
    return ledger.record_charge(s, customer_id, req.amount_cents, ctx.user_id, note=req.note, order_id=req.order_id)


@router.post("/customers/{customer_id}/ledger/payments", response_model=LedgerEntryOut)
def customer_payment(
    customer_id: str,
    req: LedgerEntryIn,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_take_payment(ctx), "ledger entries are for the supervisor or owner")
    return ledger.record_payment(s, customer_id, req.amount_cents, ctx.user_id, note=req.note, order_id=req.order_id)


# --- Orders / items ---
@router.post("/orders", response_model=OrderOut)
def create_order(req: OrderCreate, ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    return orders.create_order(s, ctx.user_id, table_label=req.table_label)


@router.get("/orders", response_model=List[OrderOut])
def list_orders(scope: str = "open", limit: int = 200, s: Session = Depends(get_session)):
    if scope == "open":
        return orders.list_open(s, limit=limit)
    if scope == "all":
        return orders.list_all(s, limit=limit)
    raise ValidationFailed(f"unknown scope {scope!r}")


@router.get("/orders/{order_id}", response_model=OrderDetail)
def order_detail(order_id: str, s: Session = Depends(get_session)):
    return _order_detail(s, orders.get_order(s, order_id))


@router.post("/orders/{order_id}/items", response_model=ItemOut)
def add_item(
    order_id: str,
    req: ItemCreate,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    return items.add_item(
        s,
        order_id,
        req.product_id,
        req.qty,
        ctx.user_id,
        unit_price_cents=req.unit_price_cents,
        station=req.station,
        notes=req.notes,
    )


@router.post("/orders/{order_id}/send", response_model=SendItemsOut)
def send_items(
    order_id: str,
    req: SendItemsRequest,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    sent = items.send_items(s, order_id, req.item_ids, ctx.user_id)
    return SendItemsOut(order_id=order_id, sent=sent)


@router.post("/orders/{order_id}/customer", response_model=OrderOut)
def link_customer(
    order_id: str,
    req: OrderCustomerUpdate,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    return orders.set_order_customer(s, order_id, req.customer_id)


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    require(can_take_payment(ctx), "only the supervisor or owner can cancel orders")
    return orders.cancel_order(s, order_id, ctx.user_id)


@router.post("/items/{item_id}/status", response_model=ItemOut)
def set_item_status(
    item_id: str,
    req: ItemStatusUpdate,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    it = require_item(s, item_id)
    allowed = can_update_kitchen_item(ctx, it.station) or (req.to == "cancelled" and can_take_payment(ctx))
    require(allowed, f"not allowed to update {it.station} items")
    return items.set_item_status(s, item_id, req.to, ctx.user_id)


@router.get("/kitchen/{station}", response_model=List[ItemOut])
def kitchen_queue(station: str, s: Session = Depends(get_session)):
    return items.list_by_station(s, station)


# --- Billing ---
@router.get("/orders/{order_id}/invoice", response_model=InvoiceOut)
def get_invoice(order_id: str, s: Session = Depends(get_session)):
    return _invoice_out(invoice.get_invoice(s, order_id))


@router.post("/orders/{order_id}/discount", response_model=InvoiceOut)
def apply_discount(
    order_id: str,
    req: DiscountRequest,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_apply_discount(ctx), "discounts are for the supervisor or owner")
    return _invoice_out(invoice.apply_discount(s, order_id, req.discount_cents, ctx.user_id))


@router.post("/orders/{order_id}/payments", response_model=PaymentResult)
def add_payment(
    order_id: str,
    req: PaymentCreate,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_take_payment(ctx), "payments are for the supervisor or owner")
    pay = payments.add_payment(s, order_id, req.amount_cents, ctx.user_id)
    od = require_order(s, order_id)
    return PaymentResult(
        payment=PaymentOut.model_validate(pay),
        invoice=_invoice_out(s.get(Invoice, order_id)),
        order_status=od.status,
    )


@router.get("/orders/{order_id}/payments", response_model=List[PaymentOut])
def list_payments(order_id: str, s: Session = Depends(get_session)):
    require_order(s, order_id)
    return payments.list_payments(s, order_id)


@router.post("/orders/{order_id}/split", response_model=SplitOut)
def split_order(
    order_id: str,
    req: SplitRequest,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_take_payment(ctx), "splitting is for the supervisor or owner")
    dst = split.split_order(s, order_id, req.item_ids, ctx.user_id)
    src = require_order(s, order_id)
    return SplitOut(
        source=OrderOut.model_validate(src),
        order=OrderOut.model_validate(dst),
        source_invoice=_invoice_out(s.get(Invoice, src.id)),
        invoice=_invoice_out(s.get(Invoice, dst.id)),
    )


@router.post("/orders/{order_id}/credit", response_model=CreditOut)
def post_to_credit(
    order_id: str,
    req: CreditRequest,
    ctx: SessionContext = Depends(actor_context),
    s: Session = Depends(get_session),
):
    require(can_take_payment(ctx), "credit posting is for the supervisor or owner")
    posting = credit.post_to_credit(s, order_id, req.customer_id, ctx.user_id, note=req.note)
    return CreditOut(
        entry_id=posting.entry_id,
        amount_cents=posting.amount_cents,
        invoice=_invoice_out(s.get(Invoice, order_id)),
    )


# --- Audit / reports (owner views) ---
@router.get("/events", response_model=List[EventOut])
def recent_events(limit: int = 100, ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    require(can_view_reports(ctx), "activity log is for the owner")
    return [
        EventOut(id=ev.id, at=ev.at, actor_user_id=ev.actor_user_id, type=ev.type, payload=events.event_payload(ev))
        for ev in events.list_recent(s, limit=limit)
    ]


@router.get("/reports/summary", response_model=PeriodSummaryOut)
def report_summary(period: str = "day", ctx: SessionContext = Depends(actor_context), s: Session = Depends(get_session)):
    require(can_view_reports(ctx), "reports are for the owner")
    start, end = reports.period_range(period, utcnow())
    out = reports.period_summary(s, start, end)
    return PeriodSummaryOut(
        period=period,
        from_ts=out["from"],
        to_ts=out["to"],
        order_count=out["order_count"],
        sales_cents=out["sales_cents"],
        cash_cents=out["cash_cents"],
        credit_cents=out["credit_cents"],
        top_products=out["top_products"],
    )


app.include_router(router)

# Overview: Read side of completed sales; computes the cash-tender part that lands in a drawer.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Sale, SaleTender
from ..models.sales import PAYMENT_METHODS
from ..validation import ValidationError, require_amount_cents
from cashledger.time_utils import utcnow


CASH = "cash"
MIXED = "mixed"


def list_sales_since(since: datetime, register_id: int | None = None) -> list[Sale]:
    """Completed (non-voided) sales with completed_at >= since, oldest first.

    register_id narrows the query to one drawer (served by ix_sales_register_completed).
    """
    query = db.session.query(Sale).filter(
        Sale.status == "COMPLETED",
        Sale.completed_at >= since,
    )
    if register_id is not None:
        query = query.filter(Sale.register_id == register_id)
    return query.order_by(Sale.completed_at.asc(), Sale.id.asc()).all()


def cash_contribution_cents(sale: Sale) -> int:
    """
    Cash actually left in the drawer by one sale.

    - pure cash: the whole total (change already netted out of total_cents)
    - mixed: only the cash tender lines
    - anything else (cards, pix, transfer): nothing
    """
    if sale.status != "COMPLETED":
        return 0
    if sale.payment_method == CASH:
        return sale.total_cents
    if sale.payment_method == MIXED:
        return sum(t.amount_cents for t in sale.tenders if t.method == CASH)
    return 0


def cash_sales_total(register_id: int, since: datetime) -> int:
    """
    Sum of cash contributions of sales rung up on this register since `since`.

    Sales without a register attribution never reach any drawer's balance.
    """
    return sum(
        cash_contribution_cents(sale)
        for sale in list_sales_since(since, register_id=register_id)
    )


def record_sale(
    *,
    total_cents: int,
    payment_method: str,
    register_id: int | None = None,
    operator_id: str | None = None,
    tenders: list[dict] | None = None,
    completed_at: datetime | None = None,
) -> Sale:
    """
    Publish a completed sale into the feed.

    Used by the checkout flow; mixed sales must provide tenders that add up
    to the sale total.
    """
    total_cents = require_amount_cents("total_cents", total_cents)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    tender_rows = []
    if payment_method == MIXED:
        if not tenders:
            raise ValidationError("tenders are required for mixed payments")
        for t in tenders:
            method = t.get("method")
            if method not in PAYMENT_METHODS or method == MIXED:
                raise ValidationError(f"Invalid tender method: {method}")
            tender_rows.append(SaleTender(
                method=method,
                amount_cents=require_amount_cents("amount_cents", t.get("amount_cents")),
            ))
        if sum(t.amount_cents for t in tender_rows) != total_cents:
            raise ValidationError("Mixed tenders must add up to total_cents")
    elif tenders:
        raise ValidationError("tenders are only accepted for mixed payments")

    sale = Sale(
        register_id=register_id,
        operator_id=operator_id,
        status="COMPLETED",
        payment_method=payment_method,
        total_cents=total_cents,
        completed_at=completed_at or utcnow(),
        tenders=tender_rows,
    )
    db.session.add(sale)
    db.session.commit()
    return sale


def void_sale(sale_id: int) -> Sale:
    """Voided sales drop out of every drawer balance on the next replay."""
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise ValidationError("Sale not found")
    sale.status = "VOIDED"
    db.session.commit()
    return sale

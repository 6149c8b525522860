from __future__ import annotations

from ..extensions import db
from cashledger.time_utils import to_utc_z

PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "pix", "transfer", "mixed")


class Sale(db.Model):
    """
    Completed sale as published by the checkout flow.

    WHY: The ledger only reads these. The cash-settled part of a sale lands
    in the drawer, so it is folded into the open session's balance without
    being a ledger event itself.

    payment_method "mixed" means the split is in SaleTender rows; any other
    method settles the whole total_cents with that method.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_register_completed", "register_id", "completed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=True, index=True)
    operator_id = db.Column(db.String(64), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)  # COMPLETED, VOIDED
    payment_method = db.Column(db.String(32), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    tenders = db.relationship("SaleTender", backref="sale", lazy="selectin", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "operator_id": self.operator_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "completed_at": to_utc_z(self.completed_at),
            "tenders": [t.to_dict() for t in self.tenders],
        }


class SaleTender(db.Model):
    """Per-method slice of a mixed-tender sale."""
    __tablename__ = "sale_tenders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "amount_cents": self.amount_cents,
        }

from __future__ import annotations

from ..extensions import db
from cashledger.time_utils import to_utc_z


class Register(db.Model):
    """
    Physical cash register / drawer.

    WHY: Cash accountability is per drawer, independent of which operator
    happens to be working it. Each register owns its own append-only ledger
    (see LedgerEvent); open/closed status and the cash balance are derived
    from that ledger and never stored here.

    DESIGN:
    - register_number is unique among live (non-deleted) registers.
    - Deletion is soft (deleted_at) so historical ledger events keep their
      register reference.
    - is_active mirrors the drawer status for listing purposes only; the
      ledger is the source of truth.
    """
    __tablename__ = "registers"
    __table_args__ = (
        db.Index(
            "uq_registers_live_number",
            "register_number",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable identifier (e.g., "REG-01", "FRONT", "DRIVE-THRU")
    register_number = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)  # Display name
    location = db.Column(db.String(128), nullable=True)  # Physical location in store

    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Operator currently responsible for the drawer (identity comes from the auth layer)
    assigned_operator_id = db.Column(db.String(64), nullable=True, index=True)
    assigned_operator_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_assigned(self) -> bool:
        return self.assigned_operator_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_number": self.register_number,
            "name": self.name,
            "location": self.location,
            "is_active": self.is_active,
            "assigned_operator_id": self.assigned_operator_id,
            "assigned_operator_name": self.assigned_operator_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

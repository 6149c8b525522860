"""
Register Registry Service

WHY: Every cash ledger belongs to a register. The registry owns the register
rows themselves: naming, numbering and which operator is responsible for a
drawer.

DESIGN PRINCIPLES:
- register_number is unique among live registers
- Deletion is soft; a deleted register is simply absent from here on
- Assignment is exclusive: one operator per register, idempotent per operator
- Open/closed status is NOT managed here (see ledger_service)
"""

from flask import current_app

from ..extensions import db
from ..models import Register
from ..errors import RegisterNotFoundError, DuplicateRegisterNumberError, AlreadyAssignedError
from ..validation import ValidationError
from cashledger.time_utils import utcnow


UPDATABLE_FIELDS = ("name", "register_number", "location", "is_active")


def _live():
    return db.session.query(Register).filter(Register.deleted_at.is_(None))


def _number_taken(register_number: str, *, exclude_id: int | None = None) -> bool:
    q = _live().filter(Register.register_number == register_number)
    if exclude_id is not None:
        q = q.filter(Register.id != exclude_id)
    return db.session.query(q.exists()).scalar()


# =============================================================================
# LOOKUP
# =============================================================================

def get_register(register_id: int) -> Register | None:
    """Live register by id, or None."""
    return _live().filter(Register.id == register_id).first()


def require_register(register_id: int) -> Register:
    register = get_register(register_id)
    if register is None:
        raise RegisterNotFoundError(f"Register {register_id} not found", register_id=register_id)
    return register


def list_registers(*, include_inactive: bool = True) -> list[Register]:
    q = _live()
    if not include_inactive:
        q = q.filter(Register.is_active.is_(True))
    return q.order_by(Register.register_number).all()


def list_available() -> list[Register]:
    """Registers with no assigned operator."""
    return _live().filter(
        Register.assigned_operator_id.is_(None)
    ).order_by(Register.register_number).all()


def get_operator_register(operator_id: str) -> Register | None:
    """The register an operator is currently assigned to, if any."""
    return _live().filter(
        Register.assigned_operator_id == operator_id
    ).order_by(Register.register_number).first()


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def create_register(
    register_number: str,
    name: str,
    location: str | None = None,
    is_active: bool = False,
) -> Register:
    """
    Create a new register.

    Args:
        register_number: Unique identifier (e.g., "REG-01", "FRONT")
        name: Display name
        location: Physical location in store
        is_active: Initial listing status; the drawer itself starts closed

    Raises:
        DuplicateRegisterNumberError: number already used by a live register
    """
    if not register_number or not name:
        raise ValidationError("register_number and name required")

    if _number_taken(register_number):
        raise DuplicateRegisterNumberError(
            f"Register number '{register_number}' already exists",
            register_number=register_number,
        )

    register = Register(
        register_number=register_number,
        name=name,
        location=location,
        is_active=is_active,
    )

    db.session.add(register)
    db.session.commit()

    current_app.logger.info("Created register %s (%s)", register.id, register_number)
    return register


def update_register(register_id: int, **changes) -> Register:
    """
    Apply a partial update.

    Only keys present in `changes` are touched, and they are applied as
    given: is_active=False deactivates even if the drawer is in use.
    """
    register = require_register(register_id)

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    new_number = changes.get("register_number")
    if new_number is not None and new_number != register.register_number:
        if _number_taken(new_number, exclude_id=register.id):
            raise DuplicateRegisterNumberError(
                f"Register number '{new_number}' already exists",
                register_number=new_number,
            )

    for field in UPDATABLE_FIELDS:
        if field in changes:
            setattr(register, field, changes[field])

    register.updated_at = utcnow()
    db.session.commit()

    return register


def delete_register(register_id: int) -> bool:
    """
    Soft-delete a register.

    Any assigned operator is released first. Returns False when the register
    is already absent; that is not an error.
    """
    register = get_register(register_id)
    if register is None:
        return False

    unassign_operator(register_id)

    register.deleted_at = utcnow()
    register.is_active = False
    db.session.commit()

    current_app.logger.info("Deleted register %s (%s)", register.id, register.register_number)
    return True


# =============================================================================
# OPERATOR ASSIGNMENT
# =============================================================================

def assign_operator(register_id: int, operator_id: str, operator_name: str) -> Register:
    """
    Make an operator responsible for a register.

    Raises:
        AlreadyAssignedError: a different operator holds the register
    """
    if not operator_id:
        raise ValidationError("operator_id required")

    register = require_register(register_id)

    if register.assigned_operator_id == operator_id:
        return register

    if register.is_assigned:
        raise AlreadyAssignedError(
            f"Register {register.register_number} is already assigned to {register.assigned_operator_name or register.assigned_operator_id}",
            register_id=register.id,
            assigned_operator_id=register.assigned_operator_id,
        )

    register.assigned_operator_id = operator_id
    register.assigned_operator_name = operator_name
    register.updated_at = utcnow()
    db.session.commit()

    return register


def unassign_operator(register_id: int) -> Register:
    """Release the register's operator; no-op if none is assigned."""
    register = require_register(register_id)

    if not register.is_assigned:
        return register

    register.assigned_operator_id = None
    register.assigned_operator_name = None
    register.updated_at = utcnow()
    db.session.commit()

    return register

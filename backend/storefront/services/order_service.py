# Overview: Service-layer operations for orders; checkout, listing and status lifecycle.

"""
Order Lifecycle Service

WHY: Orders move through a fixed set of statuses while their embedded
payment (and refund) state must stay consistent with that status. Every
change is recorded in the order's append-only audit trail.

STATUS MODEL:
    pending | processing | shipped | delivered | cancelled

    Any status may be set from any other; there is no forbidden-transition
    table. The only conditional rule is on `cancelled`: a prepaid order whose
    payment was taken is refunded automatically.

RULES:
1. Checkout writes exactly three audit entries (placed, payment, status)
2. A status change appends exactly one `status` entry; setting the same
   status again appends nothing
3. A cancellation refund appends exactly one `refund` entry and can only
   happen once (the payment is no longer `paid` afterwards)
4. Each operation is a single commit; on failure nothing is left visible

CONCURRENCY:
- Status updates lock the order row and rely on the version_id check on
  write. Conflicts and lock timeouts are retried (bounded) and then raised
  as OrderPersistenceError.
"""

from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import AuditKind, Order, OrderLine, OrderStatus, PaymentMethod, Product, User
from ..validation import (
    InfrastructureError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_order_line,
    enforce_rules_order_total,
    validate_payload,
)
from storefront.time_utils import utcnow
from . import payment_service
from .concurrency import RETRYABLE_ERRORS, lock_for_update, run_with_retry


class OrderValidationError(ValidationError):
    """Raised for invalid order input (bad line items, total, address or status)."""
    pass


class OrderNotFoundError(NotFoundError):
    """Raised when an order does not exist or is not visible to the caller."""
    pass


class OrderPersistenceError(InfrastructureError):
    """Raised when the order store fails or keeps conflicting after retries."""
    pass


VALID_STATUSES = [s.value for s in OrderStatus]

DEFAULT_NOTE_TITLE = "Note from store"

LINE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "unit_price_cents"},
    required_on_create={"product_id", "quantity", "unit_price_cents"},
)

SHIPPING_ADDRESS_POLICY = ModelValidationPolicy(
    writable_fields={"recipient_name", "phone", "street", "city", "state", "postal_code", "country"},
    field_prefix="shipping_",
)


def status_label(status: OrderStatus | str) -> str:
    """Human label used in audit messages, e.g. 'pending' -> 'Pending'."""
    return OrderStatus(status).label


def parse_status(value: Any) -> OrderStatus:
    """Validate a requested status against the closed set."""
    try:
        return OrderStatus(value)
    except ValueError:
        raise OrderValidationError(
            f"Invalid order status: {value}. Must be one of {', '.join(VALID_STATUSES)}"
        )


def _retry_settings() -> dict:
    return {
        "attempts": current_app.config.get("ORDER_WRITE_RETRY_ATTEMPTS", 3),
        "backoff_base": current_app.config.get("ORDER_WRITE_RETRY_BACKOFF", 0.1),
    }


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def _normalize_line_items(line_items: Any) -> list[dict]:
    if not isinstance(line_items, list) or not line_items:
        raise OrderValidationError("line_items must be a non-empty list")

    lines = []
    for index, raw in enumerate(line_items):
        if not isinstance(raw, dict):
            raise OrderValidationError(f"line_items[{index}] must be an object")
        try:
            patch = validate_payload(model=OrderLine, payload=raw, policy=LINE_ITEM_POLICY, partial=False)
            enforce_rules_order_line(patch)
        except ValidationError as exc:
            raise OrderValidationError(f"line_items[{index}]: {exc}") from exc
        lines.append(patch)

    product_ids = {line["product_id"] for line in lines}
    found = {
        pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - found)
    if missing:
        raise OrderValidationError(f"Unknown product(s): {', '.join(str(pid) for pid in missing)}")

    return lines


def _normalize_shipping_address(address: Any) -> dict:
    if address is None:
        address = {}
    if not isinstance(address, dict):
        raise OrderValidationError("shipping_address must be an object")
    try:
        columns = validate_payload(model=Order, payload=address, policy=SHIPPING_ADDRESS_POLICY, partial=True)
    except ValidationError as exc:
        raise OrderValidationError(f"shipping_address: {exc}") from exc

    columns = {key: (value or None) for key, value in columns.items()}
    if not columns.get("shipping_country"):
        columns["shipping_country"] = current_app.config.get("DEFAULT_SHIPPING_COUNTRY", "India")
    return columns


# =============================================================================
# CHECKOUT
# =============================================================================

def create_order(
    *,
    buyer_id: int,
    line_items: Any,
    total_cents: Any,
    shipping_address: Any = None,
    payment_method: Any = PaymentMethod.COD,
    payment_details: dict | None = None,
    payment_confirmed: bool = False,
) -> Order:
    """
    Place a new order for the authenticated buyer.

    Payment rules run first (see payment_service.validate_payment_request),
    then line items, total and shipping address are validated. The order,
    its lines and its three initial audit entries are written in one commit.

    Args:
        buyer_id: Authenticated buyer placing the order
        line_items: [{"product_id", "quantity", "unit_price_cents"}, ...]
        total_cents: Caller-supplied total (not recomputed from lines)
        shipping_address: Snapshot {recipient_name, phone, street, city, state, postal_code, country}
        payment_method: cod | upi | card | netbanking (default cod)
        payment_details: {upi_id | card_last4 | bank_name, note}
        payment_confirmed: Client confirmed the prepaid payment

    Returns:
        Persisted Order

    Raises:
        PaymentError / OrderValidationError: Invalid input; nothing persisted
        OrderPersistenceError: Storage failed
    """
    method = payment_service.parse_payment_method(payment_method)
    details = payment_service.validate_payment_request(method, payment_details, payment_confirmed)

    lines = _normalize_line_items(line_items)
    try:
        total = enforce_rules_order_total(total_cents)
    except ValidationError as exc:
        raise OrderValidationError(str(exc)) from exc
    address_columns = _normalize_shipping_address(shipping_address)

    gateway = current_app.config.get("PAYMENT_GATEWAY_LABEL", "GameON Pay")

    def _op():
        now = utcnow()
        order = Order(
            buyer_id=buyer_id,
            total_cents=total,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            **address_columns,
            **payment_service.initial_payment_columns(method, details, gateway=gateway, now=now),
        )
        for line in lines:
            order.lines.append(OrderLine(**line))

        payment_title, payment_message = payment_service.payment_audit_copy(method)
        order.append_audit_entry(
            AuditKind.ORDER_PLACED, "Order placed", "Your order has been placed successfully."
        )
        order.append_audit_entry(AuditKind.PAYMENT, payment_title, payment_message)
        order.append_audit_entry(
            AuditKind.STATUS,
            "Order status updated",
            f"Current status: {status_label(OrderStatus.PENDING)}.",
        )

        db.session.add(order)
        db.session.commit()
        return order

    retry_on = RETRYABLE_ERRORS
    if payment_service.is_online(method):
        # Transaction id collision; the next attempt draws a new id
        retry_on = RETRYABLE_ERRORS + (IntegrityError,)

    try:
        return run_with_retry(_op, retry_on=retry_on, **_retry_settings())
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OrderPersistenceError("Could not save order") from exc


# =============================================================================
# QUERIES
# =============================================================================

def list_orders(actor: User) -> list[Order]:
    """
    Orders visible to the actor: all for admins, own orders for customers.

    Lines, their products and (for admins) buyers are eagerly loaded.
    Ordered by id so repeated reads return the same sequence.
    """
    try:
        query = db.session.query(Order).options(
            selectinload(Order.lines).joinedload(OrderLine.product),
            selectinload(Order.audit_trail),
        )
        if actor.is_privileged:
            query = query.options(joinedload(Order.buyer))
        else:
            query = query.filter(Order.buyer_id == actor.id)
        return query.order_by(Order.id).all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OrderPersistenceError("Could not load orders") from exc


def get_order(order_id: int, actor: User) -> Order:
    """
    Single order, if visible to the actor.

    Customers asking for someone else's order get OrderNotFoundError,
    so order ids owned by others are not revealed.
    """
    try:
        order = db.session.get(Order, order_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OrderPersistenceError("Could not load order") from exc

    if not order or (not actor.is_privileged and order.buyer_id != actor.id):
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================

def update_order_status(order_id: int, status: Any, *, actor_user_id: int | None = None) -> Order:
    """
    Set an order's status and reconcile its payment.

    Steps (one transaction, order row locked, version checked on write):
    1. Load the order (OrderNotFoundError if absent)
    2. Validate the requested status (OrderValidationError)
    3. Assign it; append a `status` entry only if it actually changed
    4. If the new status is cancelled and the order is prepaid and paid:
       mark payment refunded, refund processed ("Cancelled by admin"),
       append a `refund` entry
    5. Otherwise normalize a missing refund sub-record to not_required
    6. Commit

    Moving a refunded order out of `cancelled` is allowed. The payment stays
    refunded and the refund stays processed: a refund is history and is never
    reversed by a later status change, so "refund processed" only implies the
    order was cancelled when the refund was recorded.

    Returns:
        Updated Order

    Raises:
        OrderNotFoundError: No such order
        OrderValidationError: Status not in the closed set
        OrderPersistenceError: Storage failed or conflicts persisted after retries
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFoundError(f"Order {order_id} not found")

        new_status = parse_status(status)
        previous_status = OrderStatus(order.status)
        order.status = new_status

        if previous_status is not new_status:
            order.append_audit_entry(
                AuditKind.STATUS,
                "Order status updated",
                f"Status changed from {status_label(previous_status)} to {status_label(new_status)}.",
                actor_user_id=actor_user_id,
            )

        refunded = False
        if new_status is OrderStatus.CANCELLED:
            refunded = payment_service.apply_cancellation_refund(
                order, now=utcnow(), actor_user_id=actor_user_id
            )
        if not refunded:
            order.ensure_refund_state()

        db.session.commit()
        return order

    try:
        return run_with_retry(_op, **_retry_settings())
    except (OrderNotFoundError, OrderValidationError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OrderPersistenceError(f"Could not update order {order_id}") from exc


def add_order_note(
    order_id: int,
    message: Any,
    *,
    title: Any = None,
    actor_user_id: int | None = None,
) -> Order:
    """
    Append a free-text `note` entry to an order's audit trail.

    No other order state changes.
    """
    message = str(message).strip() if message is not None else ""
    if not message:
        raise OrderValidationError("message required")
    if len(message) > 512:
        raise OrderValidationError("message exceeds max length 512")
    title = str(title).strip() if title else DEFAULT_NOTE_TITLE
    if len(title) > 128:
        raise OrderValidationError("title exceeds max length 128")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFoundError(f"Order {order_id} not found")

        order.append_audit_entry(AuditKind.NOTE, title, message, actor_user_id=actor_user_id)
        db.session.commit()
        return order

    try:
        return run_with_retry(_op, **_retry_settings())
    except OrderNotFoundError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OrderPersistenceError(f"Could not update order {order_id}") from exc

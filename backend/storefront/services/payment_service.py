# Overview: Service-layer rules for order payments; method validation, initial state and refunds.

"""
Order Payment Rules

WHY: An order carries exactly one embedded payment. Its initial state is
decided at checkout from the payment method, and it changes afterwards only
when a prepaid order is cancelled (automatic refund).

DESIGN PRINCIPLES:
- Payment methods are a closed enum with one rule per method
- Validation is fail-fast and ordered: confirmation first, then the
  method's required detail
- No real gateway is called; online payments are confirmed by the client
  before checkout and recorded as paid with a generated transaction id
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import current_app

from ..models import AuditKind, Order, PaymentMethod, PaymentStatus, RefundStatus
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from storefront.time_utils import epoch_millis


class PaymentError(ValidationError):
    """Raised when payment input does not satisfy the method's rules."""
    pass


# =============================================================================
# PAYMENT METHOD RULES
# =============================================================================

@dataclass(frozen=True)
class PaymentMethodRule:
    online: bool
    detail_field: str | None = None
    missing_detail_message: str | None = None


PAYMENT_METHOD_RULES: dict[PaymentMethod, PaymentMethodRule] = {
    PaymentMethod.COD: PaymentMethodRule(online=False),
    PaymentMethod.UPI: PaymentMethodRule(
        online=True,
        detail_field="upi_id",
        missing_detail_message="UPI ID is required for UPI payment.",
    ),
    PaymentMethod.CARD: PaymentMethodRule(
        online=True,
        detail_field="card_last4",
        missing_detail_message="Valid card details are required for card payment.",
    ),
    PaymentMethod.NETBANKING: PaymentMethodRule(
        online=True,
        detail_field="bank_name",
        missing_detail_message="Bank name is required for net banking payment.",
    ),
}

_missing_rules = set(PaymentMethod) - set(PAYMENT_METHOD_RULES)
if _missing_rules:
    raise RuntimeError(f"No payment rule for: {', '.join(sorted(m.value for m in _missing_rules))}")

ONLINE_PAYMENT_METHODS = frozenset(m for m, rule in PAYMENT_METHOD_RULES.items() if rule.online)

PREPAID_NOT_COMPLETED_MESSAGE = "Complete prepaid payment before placing the order."
ADMIN_CANCELLATION_REASON = "Cancelled by admin"

DETAIL_FIELDS = ("upi_id", "card_last4", "bank_name", "note")

PAYMENT_DETAILS_POLICY = ModelValidationPolicy(
    writable_fields=set(DETAIL_FIELDS),
    field_prefix="payment_",
)

TRANSACTION_ID_PREFIX = "TXN"
_TRANSACTION_ALPHABET = string.ascii_uppercase + string.digits


def parse_payment_method(value: Any) -> PaymentMethod:
    """Coerce request input to a PaymentMethod (None means cash on delivery)."""
    if value is None or value == "":
        return PaymentMethod.COD
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in PaymentMethod)
        raise PaymentError(f"Invalid payment method: {value}. Must be one of {valid}")


def is_online(method: PaymentMethod) -> bool:
    return PAYMENT_METHOD_RULES[method].online


def _detail(details: dict, field: str) -> str | None:
    value = details.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PaymentError(f"{field} must be a string")
    value = value.strip()
    return value or None


# =============================================================================
# CHECKOUT VALIDATION
# =============================================================================

def validate_payment_request(method: PaymentMethod, details: dict | None, confirmed: bool) -> dict:
    """
    Check payment input for a new order.

    Rules, evaluated in order (first failure wins):
    1. Online methods must be confirmed by the client before checkout
    2. The method's required detail (UPI ID, card last 4, bank name) must be present
    3. Details are strings within the stored column lengths

    Returns:
        Normalized details: only the method's own field plus the free-text note.

    Raises:
        PaymentError: On the first rule that fails
    """
    if details is None:
        details = {}
    if not isinstance(details, dict):
        raise PaymentError("payment_details must be an object")

    rule = PAYMENT_METHOD_RULES[method]

    if rule.online and confirmed is not True:
        raise PaymentError(PREPAID_NOT_COMPLETED_MESSAGE)

    if rule.detail_field and not _detail(details, rule.detail_field):
        raise PaymentError(rule.missing_detail_message)

    normalized = {field: None for field in DETAIL_FIELDS}
    if rule.detail_field:
        normalized[rule.detail_field] = _detail(details, rule.detail_field)
    normalized["note"] = _detail(details, "note")

    if normalized["card_last4"] is not None:
        if len(normalized["card_last4"]) != 4 or not normalized["card_last4"].isdigit():
            raise PaymentError("card_last4 must be exactly 4 digits")

    try:
        validate_payload(model=Order, payload=normalized, policy=PAYMENT_DETAILS_POLICY, partial=True)
    except ValidationError as exc:
        raise PaymentError(str(exc)) from exc

    return normalized


# =============================================================================
# INITIAL PAYMENT STATE
# =============================================================================

def generate_transaction_id(now: datetime | None = None) -> str:
    """
    Build a transaction id like TXN-1718000000000-7KQ2ZP4M.

    Time component keeps ids readable and roughly ordered; 8 characters from
    `secrets` make same-millisecond collisions negligible. The column is
    unique, so a collision fails the insert instead of overwriting.
    """
    suffix = "".join(secrets.choice(_TRANSACTION_ALPHABET) for _ in range(8))
    return f"{TRANSACTION_ID_PREFIX}-{epoch_millis(now)}-{suffix}"


def initial_payment_columns(
    method: PaymentMethod,
    details: dict,
    *,
    gateway: str,
    now: datetime,
) -> dict:
    """
    Column values for the payment embedded in a new order.

    Online: paid, with transaction id and paid_at.
    COD: pending, collected on delivery.
    Refund always starts as not_required.
    """
    online = is_online(method)
    return {
        "payment_method": method,
        "payment_status": PaymentStatus.PAID if online else PaymentStatus.PENDING,
        "payment_transaction_id": generate_transaction_id(now) if online else None,
        "payment_gateway": gateway,
        "payment_paid_at": now if online else None,
        "payment_upi_id": details.get("upi_id"),
        "payment_card_last4": details.get("card_last4"),
        "payment_bank_name": details.get("bank_name"),
        "payment_note": details.get("note"),
        "refund_status": RefundStatus.NOT_REQUIRED,
        "refund_processed_at": None,
        "refund_reason": None,
    }


def payment_audit_copy(method: PaymentMethod) -> tuple[str, str]:
    """(title, message) for the payment entry written at checkout."""
    if is_online(method):
        return "Payment successful", f"Payment received via {method.value.upper()}."
    return "Payment pending", "Cash on delivery selected. Payment will be collected at delivery."


# =============================================================================
# REFUNDS
# =============================================================================

def refund_due_on_cancellation(order: Order) -> bool:
    """A cancelled order is refunded only if it was prepaid and the money was taken."""
    payment = order.payment
    return is_online(payment.method) and payment.status is PaymentStatus.PAID


def apply_cancellation_refund(
    order: Order,
    *,
    now: datetime,
    reason: str = ADMIN_CANCELLATION_REASON,
    actor_user_id: int | None = None,
) -> bool:
    """
    Refund a cancelled prepaid order if one is due.

    Returns True if a refund was recorded (and its audit entry appended).
    Once refunded the payment is no longer `paid`, so calling this again
    is a no-op.
    """
    if not refund_due_on_cancellation(order):
        return False

    order.record_refund(reason=reason, processed_at=now)
    order.append_audit_entry(
        AuditKind.REFUND,
        "Refund processed",
        "Your prepaid order was cancelled by admin and refund has been processed.",
        actor_user_id=actor_user_id,
    )
    current_app.logger.info("Refund processed for order %s (%s)", order.id, order.payment_transaction_id)
    return True

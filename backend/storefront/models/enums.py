"""Enum definitions for order, payment and identity models."""

import enum


class OrderStatus(str, enum.Enum):
    """Fulfilment status of an order. Any status may be set from any other."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class PaymentMethod(str, enum.Enum):
    """How the buyer pays. Everything except COD is an online (prepaid) method."""

    COD = "cod"
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, enum.Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PROCESSED = "processed"


class AuditKind(str, enum.Enum):
    """Kinds of entries in an order's audit trail."""

    ORDER_PLACED = "order_placed"
    PAYMENT = "payment"
    STATUS = "status"
    REFUND = "refund"
    NOTE = "note"


class UserRole(str, enum.Enum):
    """Identity roles: customers are standard callers, admins are privileged."""

    CUSTOMER = "customer"
    ADMIN = "admin"

    @property
    def is_privileged(self) -> bool:
        return self is UserRole.ADMIN


def enum_values(enum_cls) -> list[str]:
    """values_callable for SQLAlchemy Enum columns: persist .value, not the member name."""
    return [member.value for member in enum_cls]

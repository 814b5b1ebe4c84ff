from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import event

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow
from .enums import AuditKind, OrderStatus, PaymentMethod, PaymentStatus, RefundStatus, enum_values


def _enum_column(enum_cls, name: str, length: int = 16):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=length,
        values_callable=enum_values,
        validate_strings=True,
    )


class AuditTrailError(RuntimeError):
    """Raised when code tries to rewrite or delete an existing audit entry."""


@dataclass(frozen=True)
class PaymentDetails:
    upi_id: str | None = None
    card_last4: str | None = None
    bank_name: str | None = None
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "upi_id": self.upi_id,
            "card_last4": self.card_last4,
            "bank_name": self.bank_name,
            "note": self.note,
        }


@dataclass(frozen=True)
class RefundRecord:
    status: RefundStatus
    processed_at: datetime | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "processed_at": to_utc_z(self.processed_at),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class PaymentRecord:
    """
    Read-only view of the payment embedded in an order.

    WHY: The payment has no identity of its own. It is stored on the order
    row and only changes through Order methods, so callers get a snapshot
    they cannot mutate.
    """
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None
    gateway: str
    paid_at: datetime | None
    details: PaymentDetails
    refund: RefundRecord | None

    def to_dict(self) -> dict:
        return {
            "method": self.method.value,
            "status": self.status.value,
            "transaction_id": self.transaction_id,
            "gateway": self.gateway,
            "paid_at": to_utc_z(self.paid_at),
            "details": self.details.to_dict(),
            "refund": self.refund.to_dict() if self.refund else None,
        }


class Order(db.Model):
    """
    Checkout order: line items, shipping snapshot, embedded payment and audit trail.

    WHY: The order is the aggregate root. Status, payment and refund state
    change together in one write, and every change is recorded in the
    append-only audit trail.

    CONCURRENCY: version_id is checked on every UPDATE (optimistic locking);
    a concurrent writer gets StaleDataError instead of silently overwriting.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)

    # Shipping address snapshot (copied at checkout, never edited)
    shipping_recipient_name = db.Column(db.String(128), nullable=True)
    shipping_phone = db.Column(db.String(32), nullable=True)
    shipping_street = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(128), nullable=True)
    shipping_state = db.Column(db.String(128), nullable=True)
    shipping_postal_code = db.Column(db.String(16), nullable=True)
    shipping_country = db.Column(db.String(64), nullable=False, default="India")

    status = db.Column(_enum_column(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING, index=True)

    # Embedded payment
    payment_method = db.Column(_enum_column(PaymentMethod, "payment_method"), nullable=False, default=PaymentMethod.COD)
    payment_status = db.Column(_enum_column(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_transaction_id = db.Column(db.String(64), nullable=True, unique=True)
    payment_gateway = db.Column(db.String(64), nullable=False)
    payment_paid_at = db.Column(db.DateTime, nullable=True)
    payment_upi_id = db.Column(db.String(128), nullable=True)
    payment_card_last4 = db.Column(db.String(4), nullable=True)
    payment_bank_name = db.Column(db.String(128), nullable=True)
    payment_note = db.Column(db.String(255), nullable=True)

    # Refund sub-state; NULL only on rows written before refunds were tracked
    refund_status = db.Column(_enum_column(RefundStatus, "refund_status"), nullable=True, default=RefundStatus.NOT_REQUIRED)
    refund_processed_at = db.Column(db.DateTime, nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    buyer = db.relationship("User", backref=db.backref("orders", lazy=True))
    lines = db.relationship("OrderLine", back_populates="order", order_by="OrderLine.id", lazy="selectin")
    audit_trail = db.relationship(
        "OrderAuditEntry",
        back_populates="order",
        order_by="OrderAuditEntry.sequence",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payment(self) -> PaymentRecord:
        refund = None
        if self.refund_status is not None:
            refund = RefundRecord(
                status=RefundStatus(self.refund_status),
                processed_at=self.refund_processed_at,
                reason=self.refund_reason,
            )
        return PaymentRecord(
            method=PaymentMethod(self.payment_method),
            status=PaymentStatus(self.payment_status),
            transaction_id=self.payment_transaction_id,
            gateway=self.payment_gateway,
            paid_at=self.payment_paid_at,
            details=PaymentDetails(
                upi_id=self.payment_upi_id,
                card_last4=self.payment_card_last4,
                bank_name=self.payment_bank_name,
                note=self.payment_note,
            ),
            refund=refund,
        )

    @property
    def shipping_address(self) -> dict:
        return {
            "recipient_name": self.shipping_recipient_name,
            "phone": self.shipping_phone,
            "street": self.shipping_street,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "postal_code": self.shipping_postal_code,
            "country": self.shipping_country,
        }

    def append_audit_entry(
        self,
        kind: AuditKind,
        title: str,
        message: str,
        actor_user_id: int | None = None,
    ) -> "OrderAuditEntry":
        """
        Append one entry to the audit trail, stamped now.

        This is the only supported way to add history. Touching updated_at
        makes the append part of the versioned order write.
        """
        now = utcnow()
        entry = OrderAuditEntry(
            sequence=len(self.audit_trail) + 1,
            kind=kind,
            title=title,
            message=message,
            actor_user_id=actor_user_id,
            created_at=now,
        )
        self.audit_trail.append(entry)
        self.updated_at = now
        return entry

    def record_refund(self, *, reason: str, processed_at: datetime) -> None:
        """Mark the embedded payment refunded and the refund processed."""
        self.payment_status = PaymentStatus.REFUNDED
        self.refund_status = RefundStatus.PROCESSED
        self.refund_processed_at = processed_at
        self.refund_reason = reason

    def ensure_refund_state(self) -> bool:
        """Normalize a missing refund sub-record to not_required. Returns True if changed."""
        if self.refund_status is not None:
            return False
        self.refund_status = RefundStatus.NOT_REQUIRED
        self.refund_processed_at = None
        self.refund_reason = None
        return True

    def to_dict(self, include_buyer: bool = False) -> dict:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "line_items": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
            "shipping_address": self.shipping_address,
            "status": OrderStatus(self.status).value,
            "payment": self.payment.to_dict(),
            "audit_trail": [entry.to_dict() for entry in self.audit_trail],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_buyer:
            data["buyer"] = self.buyer.to_public_dict() if self.buyer else None
        return data


class OrderLine(db.Model):
    """Line item on an order; price is the catalog price captured at checkout."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product", lazy="joined")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderAuditEntry(db.Model):
    """
    Immutable, human-readable record of one change to an order.

    Entries are only ever appended (see Order.append_audit_entry);
    sequence is dense per order starting at 1.
    """
    __tablename__ = "order_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("order_id", "sequence", name="uq_order_audit_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    kind = db.Column(_enum_column(AuditKind, "audit_kind"), nullable=False)
    title = db.Column(db.String(128), nullable=False)
    message = db.Column(db.String(512), nullable=False)

    # Who caused the change (NULL for system/customer-initiated entries)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="audit_trail")

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "kind": AuditKind(self.kind).value,
            "title": self.title,
            "message": self.message,
            "actor_user_id": self.actor_user_id,
            "at": to_utc_z(self.created_at),
        }


@event.listens_for(OrderAuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditTrailError(f"Audit entry {target.id} is immutable")


@event.listens_for(OrderAuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditTrailError(f"Audit entry {target.id} cannot be deleted")

"""
Order lifecycle tests.

Verifies:
- Checkout: payment rules first, then structure; nothing persisted on failure
- Initial payment and audit trail per payment method
- Status transitions append exactly one entry, or none when unchanged
- Cancellation refunds paid prepaid orders exactly once
- Listing and single-order visibility by role
- Notes
"""

import re

import pytest
from sqlalchemy import text

from storefront.models import (
    AuditKind,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)
from storefront.services import order_service
from storefront.services.order_service import (
    OrderNotFoundError,
    OrderValidationError,
)
from storefront.services.payment_service import PaymentError

from conftest import UPI_DETAILS, line_items_for, place_order


def _kinds(order):
    return [AuditKind(entry.kind) for entry in order.audit_trail]


def _order_count(db_session):
    return db_session.query(Order).count()


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateOrder:

    def test_cod_order(self, db_session, customer, bat):
        """Cash on delivery: payment pending, three audit entries."""
        order = place_order(customer, bat, shipping_address={"recipient_name": "Asha", "city": "Pune"})

        assert order.id is not None
        assert order.buyer_id == customer.id
        assert order.status == OrderStatus.PENDING
        assert order.total_cents == bat.price_cents

        payment = order.payment
        assert payment.method is PaymentMethod.COD
        assert payment.status is PaymentStatus.PENDING
        assert payment.transaction_id is None
        assert payment.paid_at is None
        assert payment.gateway == "GameON Pay"
        assert payment.refund.status is RefundStatus.NOT_REQUIRED

        assert _kinds(order) == [AuditKind.ORDER_PLACED, AuditKind.PAYMENT, AuditKind.STATUS]
        placed, paid, status = order.audit_trail
        assert (placed.title, placed.message) == ("Order placed", "Your order has been placed successfully.")
        assert paid.title == "Payment pending"
        assert paid.message == "Cash on delivery selected. Payment will be collected at delivery."
        assert (status.title, status.message) == ("Order status updated", "Current status: Pending.")
        assert [entry.sequence for entry in order.audit_trail] == [1, 2, 3]

        assert order.shipping_address["recipient_name"] == "Asha"
        assert order.shipping_address["country"] == "India"

    def test_upi_order_confirmed(self, db_session, customer, bat):
        """Confirmed online payment is recorded as paid with a transaction id."""
        order = place_order(customer, bat, method="upi", details=UPI_DETAILS, confirmed=True)

        payment = order.payment
        assert payment.method is PaymentMethod.UPI
        assert payment.status is PaymentStatus.PAID
        assert re.match(r"^TXN-\d{13}-[A-Z0-9]{8}$", payment.transaction_id)
        assert payment.paid_at is not None
        assert payment.details.upi_id == "buyer@okbank"
        assert order.audit_trail[1].title == "Payment successful"
        assert order.audit_trail[1].message == "Payment received via UPI."

    def test_unconfirmed_prepaid_rejected(self, db_session, customer, bat):
        with pytest.raises(PaymentError) as exc:
            place_order(customer, bat, method="upi", details=UPI_DETAILS, confirmed=False)
        assert str(exc.value) == "Complete prepaid payment before placing the order."
        assert _order_count(db_session) == 0

    def test_confirmed_upi_without_id_rejected(self, db_session, customer, bat):
        with pytest.raises(PaymentError) as exc:
            place_order(customer, bat, method="upi", details={}, confirmed=True)
        assert str(exc.value) == "UPI ID is required for UPI payment."
        assert _order_count(db_session) == 0

    def test_default_payment_method_is_cod(self, db_session, customer, bat):
        order = order_service.create_order(
            buyer_id=customer.id, line_items=line_items_for(bat), total_cents=bat.price_cents
        )
        assert order.payment.method is PaymentMethod.COD
        assert order.payment.status is PaymentStatus.PENDING

    def test_enum_payment_method_accepted(self, db_session, customer, bat):
        order = place_order(customer, bat, method=PaymentMethod.CARD, details={"card_last4": "4242"}, confirmed=True)
        assert order.payment.method is PaymentMethod.CARD
        assert order.payment.status is PaymentStatus.PAID

    def test_oversized_payment_detail_rejected(self, db_session, customer, bat):
        details = {"upi_id": "buyer@okbank", "note": "n" * 2000}
        with pytest.raises(PaymentError, match="note exceeds max length 255"):
            place_order(customer, bat, method="upi", details=details, confirmed=True)
        assert _order_count(db_session) == 0

    def test_payment_checked_before_line_items(self, db_session, customer):
        with pytest.raises(PaymentError, match="Complete prepaid payment"):
            order_service.create_order(
                buyer_id=customer.id,
                line_items=[],
                total_cents=-1,
                payment_method="card",
            )

    @pytest.mark.parametrize(
        "line_items,match",
        [
            ([], "non-empty list"),
            ("bat", "non-empty list"),
            ([42], r"line_items\[0\] must be an object"),
            ([{"product_id": 1, "quantity": 1}], "Missing required fields: unit_price_cents"),
            ([{"product_id": 1, "quantity": 0, "unit_price_cents": 100}], "quantity must be >= 1"),
            ([{"product_id": 1, "quantity": 1, "unit_price_cents": -5}], "unit_price_cents must be >= 0"),
            ([{"product_id": 1, "quantity": 1.5, "unit_price_cents": 100}], "must be an integer"),
            ([{"product_id": 1, "quantity": 1, "unit_price_cents": 100, "discount": 5}], "Field not allowed: discount"),
        ],
    )
    def test_invalid_line_items(self, db_session, customer, line_items, match):
        with pytest.raises(OrderValidationError, match=match):
            order_service.create_order(buyer_id=customer.id, line_items=line_items, total_cents=100)
        assert _order_count(db_session) == 0

    def test_unknown_product_rejected(self, db_session, customer, bat):
        lines = line_items_for(bat) + [{"product_id": 9999, "quantity": 1, "unit_price_cents": 100}]
        with pytest.raises(OrderValidationError, match=r"Unknown product\(s\): 9999"):
            order_service.create_order(buyer_id=customer.id, line_items=lines, total_cents=100)
        assert _order_count(db_session) == 0

    @pytest.mark.parametrize("total", [-1, "100", 10.5, True, None])
    def test_invalid_total(self, db_session, customer, bat, total):
        with pytest.raises(OrderValidationError, match="total_cents"):
            order_service.create_order(buyer_id=customer.id, line_items=line_items_for(bat), total_cents=total)
        assert _order_count(db_session) == 0

    def test_total_is_not_recomputed(self, db_session, customer, bat):
        order = order_service.create_order(
            buyer_id=customer.id, line_items=line_items_for(bat, quantity=2), total_cents=0
        )
        assert order.total_cents == 0
        assert order.lines[0].line_total_cents == 2 * bat.price_cents

    def test_invalid_shipping_address(self, db_session, customer, bat):
        with pytest.raises(OrderValidationError, match="Field not allowed: planet"):
            place_order(customer, bat, shipping_address={"planet": "Mars"})
        with pytest.raises(OrderValidationError, match="postal_code exceeds max length"):
            place_order(customer, bat, shipping_address={"postal_code": "1" * 17})
        assert _order_count(db_session) == 0

    def test_transaction_id_collision_retried(self, db_session, customer, bat, monkeypatch):
        """A colliding transaction id fails the insert and is redrawn, never overwritten."""
        ids = iter(["TXN-1-AAAAAAAA", "TXN-1-AAAAAAAA", "TXN-1-BBBBBBBB"])
        monkeypatch.setattr(
            "storefront.services.payment_service.generate_transaction_id",
            lambda now=None: next(ids),
        )

        first = place_order(customer, bat, method="upi", details=UPI_DETAILS, confirmed=True)
        second = place_order(customer, bat, method="upi", details=UPI_DETAILS, confirmed=True)

        assert first.payment.transaction_id == "TXN-1-AAAAAAAA"
        assert second.payment.transaction_id == "TXN-1-BBBBBBBB"
        assert _order_count(db_session) == 2


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================


class TestUpdateOrderStatus:

    def test_transition_appends_one_status_entry(self, db_session, admin, cod_order):
        order = order_service.update_order_status(cod_order.id, "processing", actor_user_id=admin.id)

        assert order.status == OrderStatus.PROCESSING
        assert len(order.audit_trail) == 4
        entry = order.audit_trail[-1]
        assert AuditKind(entry.kind) is AuditKind.STATUS
        assert entry.message == "Status changed from Pending to Processing."
        assert entry.actor_user_id == admin.id
        assert entry.sequence == 4

    def test_same_status_appends_nothing(self, db_session, cod_order):
        order = order_service.update_order_status(cod_order.id, "pending")
        assert order.status == OrderStatus.PENDING
        assert len(order.audit_trail) == 3

    def test_any_status_reachable_from_any_other(self, db_session, cod_order):
        for status in ["delivered", "pending", "cancelled", "shipped"]:
            order = order_service.update_order_status(cod_order.id, status)
        assert order.status == OrderStatus.SHIPPED
        assert len(order.audit_trail) == 3 + 4

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            order_service.update_order_status(9999, "shipped")

    def test_not_found_checked_before_status(self, db_session):
        with pytest.raises(OrderNotFoundError):
            order_service.update_order_status(9999, "teleported")

    def test_invalid_status_changes_nothing(self, db_session, cod_order):
        with pytest.raises(OrderValidationError, match="Invalid order status: teleported"):
            order_service.update_order_status(cod_order.id, "teleported")

        db_session.expire_all()
        order = db_session.get(Order, cod_order.id)
        assert order.status == OrderStatus.PENDING
        assert len(order.audit_trail) == 3

    def test_cancel_paid_prepaid_order_refunds(self, db_session, admin, upi_order):
        transaction_id = upi_order.payment.transaction_id
        order = order_service.update_order_status(upi_order.id, "cancelled", actor_user_id=admin.id)

        payment = order.payment
        assert order.status == OrderStatus.CANCELLED
        assert payment.status is PaymentStatus.REFUNDED
        assert payment.refund.status is RefundStatus.PROCESSED
        assert payment.refund.reason == "Cancelled by admin"
        assert payment.refund.processed_at is not None
        # Transaction id survives the refund
        assert payment.transaction_id == transaction_id

        assert _kinds(order)[-2:] == [AuditKind.STATUS, AuditKind.REFUND]
        refund_entry = order.audit_trail[-1]
        assert refund_entry.title == "Refund processed"
        assert refund_entry.message == (
            "Your prepaid order was cancelled by admin and refund has been processed."
        )
        assert refund_entry.actor_user_id == admin.id

    def test_cancel_again_is_idempotent(self, db_session, upi_order):
        """Re-cancelling a refunded order appends nothing and refunds nothing."""
        first = order_service.update_order_status(upi_order.id, "cancelled")
        trail_before = [(e.sequence, e.kind) for e in first.audit_trail]
        processed_at = first.payment.refund.processed_at

        again = order_service.update_order_status(upi_order.id, "cancelled")

        assert [(e.sequence, e.kind) for e in again.audit_trail] == trail_before
        assert again.payment.status is PaymentStatus.REFUNDED
        assert again.payment.refund.processed_at == processed_at

    def test_uncancel_then_cancel_does_not_refund_twice(self, db_session, upi_order):
        order_service.update_order_status(upi_order.id, "cancelled")
        order_service.update_order_status(upi_order.id, "processing")
        order = order_service.update_order_status(upi_order.id, "cancelled")

        assert _kinds(order).count(AuditKind.REFUND) == 1
        assert order.payment.status is PaymentStatus.REFUNDED

    def test_reopening_refunded_order_keeps_refund(self, db_session, upi_order):
        """A refunded order may leave `cancelled`; the refund is not reversed."""
        order_service.update_order_status(upi_order.id, "cancelled")
        order = order_service.update_order_status(upi_order.id, "shipped")

        assert order.status == OrderStatus.SHIPPED
        assert order.payment.status is PaymentStatus.REFUNDED
        assert order.payment.refund.status is RefundStatus.PROCESSED
        assert order.payment.refund.reason == "Cancelled by admin"
        assert _kinds(order)[3:] == [AuditKind.STATUS, AuditKind.REFUND, AuditKind.STATUS]
        assert order.audit_trail[-1].message == "Status changed from Cancelled to Shipped."

    def test_cancel_cod_order_does_not_refund(self, db_session, cod_order):
        order = order_service.update_order_status(cod_order.id, "cancelled")

        assert order.payment.status is PaymentStatus.PENDING
        assert order.payment.refund.status is RefundStatus.NOT_REQUIRED
        assert AuditKind.REFUND not in _kinds(order)

    def test_missing_refund_state_normalized(self, db_session, cod_order):
        """Rows without a refund sub-record get not_required on their next status change."""
        db_session.execute(text("UPDATE orders SET refund_status = NULL WHERE id = :id"), {"id": cod_order.id})
        db_session.commit()
        db_session.expire_all()
        assert db_session.get(Order, cod_order.id).payment.refund is None

        order = order_service.update_order_status(cod_order.id, "shipped")
        assert order.payment.refund.status is RefundStatus.NOT_REQUIRED

    def test_status_change_bumps_version(self, db_session, cod_order):
        version = db_session.get(Order, cod_order.id).version_id
        order = order_service.update_order_status(cod_order.id, "shipped")
        assert order.version_id == version + 1


# =============================================================================
# QUERIES
# =============================================================================


class TestListOrders:

    def test_admin_sees_all(self, db_session, admin, customer, other_customer, bat):
        mine = place_order(customer, bat)
        theirs = place_order(other_customer, bat)

        orders = order_service.list_orders(admin)
        assert [o.id for o in orders] == [mine.id, theirs.id]
        assert orders[0].to_dict(include_buyer=True)["buyer"]["username"] == customer.username

    def test_customer_sees_own(self, db_session, customer, other_customer, bat):
        mine = place_order(customer, bat)
        place_order(other_customer, bat)

        orders = order_service.list_orders(customer)
        assert [o.id for o in orders] == [mine.id]

    def test_customer_without_orders(self, db_session, customer, other_customer, bat):
        place_order(other_customer, bat)
        assert order_service.list_orders(customer) == []

    def test_listing_is_a_pure_read(self, db_session, admin, upi_order, cod_order):
        first = [o.to_dict(include_buyer=True) for o in order_service.list_orders(admin)]
        second = [o.to_dict(include_buyer=True) for o in order_service.list_orders(admin)]

        assert first == second
        assert [o["version_id"] for o in first] == [1, 1]

    def test_serialized_lines_embed_product(self, db_session, customer, upi_order):
        data = order_service.list_orders(customer)[0].to_dict()

        assert [line["product"]["name"] for line in data["line_items"]] == [
            "Kashmir Willow Cricket Bat", "Leather Cricket Ball"
        ]
        assert data["payment"]["method"] == "upi"
        assert data["payment"]["refund"]["status"] == "not_required"
        assert data["audit_trail"][0]["kind"] == "order_placed"
        assert data["audit_trail"][0]["at"].endswith("Z")
        assert "buyer" not in data


class TestGetOrder:

    def test_owner_can_read(self, db_session, customer, cod_order):
        assert order_service.get_order(cod_order.id, customer).id == cod_order.id

    def test_admin_can_read_any(self, db_session, admin, cod_order):
        assert order_service.get_order(cod_order.id, admin).id == cod_order.id

    def test_other_customer_gets_not_found(self, db_session, other_customer, cod_order):
        with pytest.raises(OrderNotFoundError):
            order_service.get_order(cod_order.id, other_customer)

    def test_missing_order(self, db_session, admin):
        with pytest.raises(OrderNotFoundError, match="Order 9999 not found"):
            order_service.get_order(9999, admin)


# =============================================================================
# NOTES
# =============================================================================


class TestAddOrderNote:

    def test_note_appended(self, db_session, admin, cod_order):
        order = order_service.add_order_note(cod_order.id, "Packed with care", actor_user_id=admin.id)

        entry = order.audit_trail[-1]
        assert AuditKind(entry.kind) is AuditKind.NOTE
        assert entry.title == "Note from store"
        assert entry.message == "Packed with care"
        assert entry.sequence == 4
        assert order.status == OrderStatus.PENDING
        assert order.payment.status is PaymentStatus.PENDING

    def test_custom_title(self, db_session, cod_order):
        order = order_service.add_order_note(cod_order.id, "Courier delayed", title="Delivery update")
        assert order.audit_trail[-1].title == "Delivery update"

    @pytest.mark.parametrize("message", [None, "", "   "])
    def test_message_required(self, db_session, cod_order, message):
        with pytest.raises(OrderValidationError, match="message required"):
            order_service.add_order_note(cod_order.id, message)

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            order_service.add_order_note(9999, "hello")

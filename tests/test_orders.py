import io

import pytest
from sqlmodel import select

from marketplace.config import settings
from marketplace.constants.order_status import MANUAL_TRANSITIONS, OrderStatus
from marketplace.constants.payment_status import PaymentStatus
from marketplace.errors import InvalidArgumentError, InvalidStateError, NotFoundError, PermissionDeniedError
from marketplace.models.notifications import Notification
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.models.product import Product
from marketplace.models.store import Store
from marketplace.services import notification_service, order_service, payment_service
from marketplace.services.checkout_service import checkout
from marketplace.services.order_event_service import list_order_events

from conftest import reload


@pytest.fixture()
def order(session, buyer, scenario_cart):
    return checkout(session, buyer)


@pytest.fixture()
def paid_order(session, buyer, order):
    payment_service.create_payment(session, buyer, order.id, "cash")
    return reload(session, Order, order.id)


class TestTransitions:
    def test_happy_path_to_delivered(self, session, admin, paid_order):
        assert paid_order.status == OrderStatus.PROCESSING.value

        order_service.change_order_status(session, admin, paid_order.id, "Shipped")
        order = order_service.change_order_status(session, admin, paid_order.id, "Delivered")

        assert order.status == OrderStatus.DELIVERED.value
        assert order_service.is_terminal(order)

    def test_terminal_status_is_final(self, session, admin, paid_order):
        order_service.change_order_status(session, admin, paid_order.id, "Shipped")
        order_service.change_order_status(session, admin, paid_order.id, "Delivered")

        for target in ("Processing", "Cancelled", "Return"):
            with pytest.raises(InvalidStateError) as exc:
                order_service.change_order_status(session, admin, paid_order.id, target)
            assert exc.value.reason == "invalid_transition"

    def test_cannot_skip_to_shipped_before_payment(self, session, admin, order):
        with pytest.raises(InvalidStateError):
            order_service.change_order_status(session, admin, order.id, "Shipped")

        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value

    def test_same_status_is_a_no_op(self, session, admin, paid_order):
        events = len(list_order_events(session, paid_order.id))

        order = order_service.change_order_status(session, admin, paid_order.id, "Processing")

        assert order.status == OrderStatus.PROCESSING.value
        assert len(list_order_events(session, paid_order.id)) == events

    def test_unknown_status(self, session, admin, order):
        with pytest.raises(InvalidArgumentError):
            order_service.change_order_status(session, admin, order.id, "Teleported")

    def test_missing_order(self, session, admin):
        with pytest.raises(NotFoundError):
            order_service.change_order_status(session, admin, 404, "Cancelled")

    def test_terminal_statuses_have_no_manual_exits(self):
        for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURN):
            assert MANUAL_TRANSITIONS[status] == []

    def test_status_change_recorded_and_notified(self, session, buyer, admin, paid_order):
        order_service.change_order_status(session, admin, paid_order.id, "Shipped", note="Kerry TH123")

        events = list_order_events(session, paid_order.id)
        shipped = [e for e in events if e.label == "Processing -> Shipped"]
        assert len(shipped) == 1
        assert shipped[0].actor_id == admin.id
        assert shipped[0].meta["note"] == "Kerry TH123"


class TestCancellation:
    def test_cancel_restocks(self, session, admin, order, scenario_cart):
        p1, p2 = scenario_cart
        assert reload(session, Product, p1.id).quantity == 8

        order_service.change_order_status(session, admin, order.id, "Cancelled")

        assert reload(session, Product, p1.id).quantity == 10
        assert reload(session, Product, p1.id).sold == 0
        assert reload(session, Product, p2.id).quantity == 5

    def test_cancel_fails_open_payment(self, session, buyer, admin, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        order_service.change_order_status(session, admin, order.id, "Cancelled")

        stored = reload(session, Payment, payment.id)
        assert stored.status == PaymentStatus.FAILED.value
        assert stored.active_order_id is None

    def test_cancel_during_review_clears_admin_queue(self, session, buyer, admin, order, monkeypatch):
        monkeypatch.setattr(settings, "slip_review_required", True)
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        payment_service.upload_slip(
            session, buyer, payment.id, io.BytesIO(b"slip"), "slip.png", "image/png",
            storage=lambda payment_id, *args: f"https://files.example.com/slips/{payment_id}.png",
        )
        assert notification_service.list_pending_approvals(session)["total_items"] == 1

        order_service.change_order_status(session, admin, order.id, "Cancelled")

        assert notification_service.list_pending_approvals(session)["total_items"] == 0
        stored = reload(session, Payment, payment.id)
        assert stored.status == PaymentStatus.FAILED.value
        assert stored.rejection_reason == "Order cancelled"

        buyer_payment_notes = session.exec(
            select(Notification.type)
            .where(Notification.user_id == buyer.id, Notification.payment_id == payment.id)
            .order_by(Notification.id)
        ).all()
        assert buyer_payment_notes[-1] == "payment_failed"

        with pytest.raises(InvalidStateError):
            payment_service.approve_payment(session, admin, payment.id)

    def test_return_releases_pending_payment(self, session, buyer, admin, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        order_service.change_order_status(session, admin, order.id, "Return")

        stored = reload(session, Payment, payment.id)
        assert stored.status == PaymentStatus.FAILED.value
        assert stored.active_order_id is None
        assert stored.rejection_reason == "Order marked Return"

        timeline = list_order_events(session, order.id, payment_id=payment.id)
        assert "payment_failed" in {e.event_type for e in timeline}

    def test_completed_payment_untouched_on_delivery(self, session, admin, paid_order):
        order_service.change_order_status(session, admin, paid_order.id, "Shipped")
        order_service.change_order_status(session, admin, paid_order.id, "Delivered")

        [payment] = order_service.payments_for_order(session, paid_order.id)
        assert payment.status == PaymentStatus.COMPLETED.value


class TestPermissions:
    def test_seller_with_a_line_may_ship(self, session, seller, paid_order):
        order = order_service.change_order_status(session, seller, paid_order.id, "Shipped")
        assert order.status == OrderStatus.SHIPPED.value

    def test_other_seller_is_denied(self, session, make_user, paid_order):
        stranger = make_user("seller")
        session.add(Store(name="Other Store", owner_id=stranger.id))
        session.commit()

        with pytest.raises(PermissionDeniedError):
            order_service.change_order_status(session, stranger, paid_order.id, "Shipped")

    def test_buyer_is_denied(self, session, buyer, paid_order):
        with pytest.raises(PermissionDeniedError):
            order_service.change_order_status(session, buyer, paid_order.id, "Cancelled")


class TestReads:
    def test_visibility(self, session, buyer, seller, admin, make_user, order):
        assert order_service.get_order_for(session, buyer, order.id).id == order.id
        assert order_service.get_order_for(session, admin, order.id).id == order.id
        assert order_service.get_order_for(session, seller, order.id).id == order.id

        with pytest.raises(NotFoundError):
            order_service.get_order_for(session, make_user(), order.id)

    def test_store_orders_only_lists_own(self, session, seller, make_user, order):
        other = make_user("seller")

        assert order_service.list_store_orders(session, seller)["total_items"] == 1
        assert order_service.list_store_orders(session, other)["total_items"] == 0

    def test_admin_list_status_filter(self, session, order):
        assert order_service.list_orders(session, status="Not Process")["total_items"] == 1
        assert order_service.list_orders(session, status="Shipped")["total_items"] == 0
        assert order_service.list_orders(session, status="all")["total_items"] == 1

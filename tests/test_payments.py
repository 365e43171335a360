import io
from decimal import Decimal

import pytest
from sqlmodel import select

from marketplace.config import settings
from marketplace.constants.order_status import OrderStatus
from marketplace.constants.payment_status import PaymentStatus
from marketplace.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from marketplace.models.notifications import Notification
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.services import order_service, payment_service
from marketplace.services.checkout_service import checkout
from marketplace.services.order_event_service import list_order_events

from conftest import reload


def fake_storage(payment_id, fileobj, filename, content_type):
    return f"https://files.example.com/slips/{payment_id}/{filename}"


def upload(session, user, payment_id):
    return payment_service.upload_slip(
        session, user, payment_id, io.BytesIO(b"slip"), "slip.png", "image/png",
        storage=fake_storage,
    )


@pytest.fixture()
def order(session, buyer, scenario_cart):
    return checkout(session, buyer)


@pytest.fixture()
def review_required(monkeypatch):
    monkeypatch.setattr(settings, "slip_review_required", True)


def notification_types(session, **where):
    query = select(Notification)
    for field, value in where.items():
        query = query.where(getattr(Notification, field) == value)
    return [n.type for n in session.exec(query.order_by(Notification.id)).all()]


class TestCreatePayment:
    def test_qr_payment_starts_pending(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        assert payment.status == PaymentStatus.PENDING.value
        assert payment.amount == Decimal("250")
        assert payment.currency == "THB"
        assert payment.transaction_id.startswith("TXN_")
        assert payment.qr_code_data.endswith("0000250.006304")
        assert payment.active_order_id == order.id
        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value

    @pytest.mark.parametrize("method", ["cash", "credit_card"])
    def test_immediate_methods_complete_and_process_order(self, session, buyer, order, method):
        payment = payment_service.create_payment(session, buyer, order.id, method)

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.qr_code_data is None
        assert reload(session, Order, order.id).status == OrderStatus.PROCESSING.value

    def test_shipping_fee_added_to_amount(self, session, buyer, order):
        payment = payment_service.create_payment(
            session, buyer, order.id, "qr_code", shipping_fee=Decimal("40")
        )
        assert payment.amount == Decimal("290")

    def test_customer_info_overrides_profile(self, session, buyer, order):
        payment = payment_service.create_payment(
            session, buyer, order.id, "cash",
            customer={"name": "Gift Receiver", "address": "1 Silom Rd", "phone": "0899999999"},
        )

        assert payment.customer_name == "Gift Receiver"
        assert payment.customer_email == buyer.email
        stored = reload(session, Order, order.id)
        assert stored.shipping_address == "1 Silom Rd"
        assert stored.shipping_phone == "0899999999"

    def test_second_active_payment_conflicts(self, session, buyer, order):
        first = payment_service.create_payment(session, buyer, order.id, "qr_code")

        with pytest.raises(ConflictError) as exc:
            payment_service.create_payment(session, buyer, order.id, "qr_code")

        assert exc.value.reason == "payment_exists"
        assert exc.value.extra["payment_id"] == first.id

    def test_unknown_method(self, session, buyer, order):
        with pytest.raises(InvalidArgumentError):
            payment_service.create_payment(session, buyer, order.id, "bitcoin")

    def test_other_users_order_is_not_found(self, session, make_user, order):
        stranger = make_user()
        with pytest.raises(NotFoundError):
            payment_service.create_payment(session, stranger, order.id, "cash")

    def test_cancelled_order_is_not_payable(self, session, buyer, admin, order):
        order_service.change_order_status(session, admin, order.id, "Cancelled")

        with pytest.raises(InvalidStateError) as exc:
            payment_service.create_payment(session, buyer, order.id, "cash")

        assert exc.value.reason == "order_not_payable"


class TestPromptPay:
    def test_qr_details(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        qr = payment_service.promptpay_qr(session, buyer, payment.id)

        assert qr["qr_string"] == payment.qr_code_data
        assert qr["amount"] == Decimal("250")
        assert len(qr["instructions"]) == 5

    def test_payload_format(self):
        payload = payment_service.promptpay_payload(Decimal("1234.5"))
        assert payload == payment_service.PROMPTPAY_PREFIX + "0001234.50" + "6304"

    def test_not_for_cash(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "cash")
        with pytest.raises(InvalidStateError):
            payment_service.promptpay_qr(session, buyer, payment.id)


class TestSlipUpload:
    def test_slip_completes_payment_and_processes_order(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        payment = upload(session, buyer, payment.id)

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.slip_url.startswith("https://files.example.com/slips/")
        assert reload(session, Order, order.id).status == OrderStatus.PROCESSING.value
        assert "payment_completed" in notification_types(session, user_id=buyer.id)
        assert "order_status_updated" in notification_types(session, user_id=buyer.id)

    def test_second_slip_is_rejected(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        with pytest.raises(InvalidStateError):
            upload(session, buyer, payment.id)

    def test_slip_for_cash_payment(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "cash")
        with pytest.raises(InvalidStateError) as exc:
            upload(session, buyer, payment.id)
        assert exc.value.reason == "not_qr_payment"

    def test_storage_failure_leaves_payment_pending(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        def broken_storage(*args):
            raise InvalidArgumentError("Unsupported slip file type: text/plain")

        with pytest.raises(InvalidArgumentError):
            payment_service.upload_slip(
                session, buyer, payment.id, io.BytesIO(b"x"), "a.txt", "text/plain",
                storage=broken_storage,
            )

        assert reload(session, Payment, payment.id).status == PaymentStatus.PENDING.value
        assert notification_types(session, payment_id=payment.id) == ["payment_created"]

    def test_slip_discarded_when_transaction_fails(self, session, buyer, order, monkeypatch):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        discarded = []

        def broken_timeline(*args, **kwargs):
            raise RuntimeError("timeline unavailable")

        monkeypatch.setattr(payment_service, "log_order_event", broken_timeline)

        with pytest.raises(RuntimeError):
            payment_service.upload_slip(
                session, buyer, payment.id, io.BytesIO(b"slip"), "slip.png", "image/png",
                storage=fake_storage, discard=discarded.append,
            )

        stored = reload(session, Payment, payment.id)
        assert stored.status == PaymentStatus.PENDING.value
        assert stored.slip_url is None
        assert discarded == [f"https://files.example.com/slips/{payment.id}/slip.png"]
        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value
        assert notification_types(session, payment_id=payment.id) == ["payment_created"]

    def test_nothing_stored_when_status_move_fails(self, session, buyer, order, monkeypatch):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        stored_for = []

        def recording_storage(payment_id, *args):
            stored_for.append(payment_id)
            return "https://files.example.com/slips/unused.png"

        def lost_race(*args, **kwargs):
            raise InvalidStateError("Payment status changed concurrently", reason="invalid_transition")

        monkeypatch.setattr(payment_service, "_move_payment", lost_race)

        with pytest.raises(InvalidStateError):
            payment_service.upload_slip(
                session, buyer, payment.id, io.BytesIO(b"slip"), "slip.png", "image/png",
                storage=recording_storage,
            )

        assert stored_for == []
        assert notification_types(session, payment_id=payment.id) == ["payment_created"]


class TestAdminReview:
    def test_slip_waits_for_approval(self, session, buyer, order, review_required):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        payment = upload(session, buyer, payment.id)

        assert payment.status == PaymentStatus.WAITING_APPROVAL.value
        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value
        assert notification_types(session, target_role="admin") == ["payment_pending"]

    def test_approve(self, session, buyer, admin, order, review_required):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        payment = payment_service.approve_payment(session, admin, payment.id)

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.approved_by == admin.id
        assert payment.approved_at is not None
        assert reload(session, Order, order.id).status == OrderStatus.PROCESSING.value
        assert notification_types(session, target_role="admin") == []
        assert "payment_approved" in notification_types(session, user_id=buyer.id)

    def test_reject_with_reason(self, session, buyer, admin, order, review_required):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        payment = payment_service.reject_payment(session, admin, payment.id, "illegible slip")

        assert payment.status == PaymentStatus.FAILED.value
        assert payment.rejection_reason == "illegible slip"
        assert payment.rejected_by == admin.id
        assert payment.active_order_id is None
        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value

        rejected = session.exec(
            select(Notification).where(
                Notification.user_id == buyer.id,
                Notification.type == "payment_rejected",
            )
        ).one()
        assert "illegible slip" in rejected.message
        assert rejected.data["reason"] == "illegible slip"

    def test_buyer_can_pay_again_after_rejection(self, session, buyer, admin, order, review_required):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)
        payment_service.reject_payment(session, admin, payment.id, "wrong amount")

        retry = payment_service.create_payment(session, buyer, order.id, "cash")

        assert retry.status == PaymentStatus.COMPLETED.value
        assert reload(session, Order, order.id).status == OrderStatus.PROCESSING.value

    def test_reject_requires_reason(self, session, buyer, admin, order, review_required):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        with pytest.raises(InvalidArgumentError):
            payment_service.reject_payment(session, admin, payment.id, "  ")

    def test_approving_completed_payment_is_invalid(self, session, buyer, admin, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        with pytest.raises(InvalidStateError):
            payment_service.approve_payment(session, admin, payment.id)

        stored = reload(session, Payment, payment.id)
        assert stored.status == PaymentStatus.COMPLETED.value
        assert stored.approved_by is None

    def test_approve_pending_payment_is_invalid(self, session, buyer, admin, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        with pytest.raises(InvalidStateError):
            payment_service.approve_payment(session, admin, payment.id)


class TestWebhook:
    def test_completed(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        payment = payment_service.handle_webhook(session, payment.transaction_id, "completed", "gw_1")

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.gateway_id == "gw_1"
        assert reload(session, Order, order.id).status == OrderStatus.PROCESSING.value

    def test_failed_then_new_payment(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")

        payment_service.handle_webhook(session, payment.transaction_id, "failed")

        assert reload(session, Order, order.id).status == OrderStatus.PAYMENT_FAILED.value
        assert "payment_failed" in notification_types(session, user_id=buyer.id)

        retry = payment_service.create_payment(session, buyer, order.id, "qr_code")
        assert retry.status == PaymentStatus.PENDING.value
        assert reload(session, Order, order.id).status == OrderStatus.NOT_PROCESS.value

    def test_replay_is_ignored(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        payment_service.handle_webhook(session, payment.transaction_id, "completed")
        events_before = len(list_order_events(session, order.id))

        payment = payment_service.handle_webhook(session, payment.transaction_id, "completed")

        assert payment.status == PaymentStatus.COMPLETED.value
        assert len(list_order_events(session, order.id)) == events_before

    def test_completed_payment_cannot_fail(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "cash")
        with pytest.raises(InvalidStateError):
            payment_service.handle_webhook(session, payment.transaction_id, "failed")

    def test_unknown_transaction(self, session):
        with pytest.raises(NotFoundError):
            payment_service.handle_webhook(session, "TXN_missing", "completed")

    def test_only_final_statuses(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        with pytest.raises(InvalidArgumentError):
            payment_service.handle_webhook(session, payment.transaction_id, "pending")


class TestReads:
    def test_admin_list_filters(self, session, buyer, order):
        payment_service.create_payment(session, buyer, order.id, "qr_code")

        result = payment_service.list_payments(session, status="pending")
        assert result["total_items"] == 1
        assert payment_service.list_payments(session, status="completed")["total_items"] == 0
        assert payment_service.list_payments(session, method="cash")["total_items"] == 0

    def test_buyer_cannot_see_others_payment(self, session, buyer, make_user, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        stranger = make_user()

        with pytest.raises(NotFoundError):
            payment_service.get_payment_for(session, stranger, payment.id)

    def test_payment_events_on_timeline(self, session, buyer, order):
        payment = payment_service.create_payment(session, buyer, order.id, "qr_code")
        upload(session, buyer, payment.id)

        events = list_order_events(session, order.id, payment_id=payment.id)

        assert {e.event_type for e in events} == {"payment_created", "slip_uploaded"}
        assert all(e.actor_id == buyer.id for e in events)

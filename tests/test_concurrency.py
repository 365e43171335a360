"""
Races between independent sessions, one per thread, against the same
database file.
"""
import threading
from decimal import Decimal

from sqlmodel import Session, select

from marketplace.config import settings
from marketplace.database import engine
from marketplace.errors import ConflictError, CouponRejectedError, InsufficientStockError
from marketplace.models.coupon import Coupon
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.services import cart_service, coupon_service, payment_service
from marketplace.services.checkout_service import checkout

from conftest import cart_of, reload


def run_together(target, args_list):
    barrier = threading.Barrier(len(args_list))
    results = [None] * len(args_list)

    def worker(index, args):
        barrier.wait()
        try:
            results[index] = ("ok", target(*args))
        except Exception as e:
            results[index] = ("error", e)

    threads = [
        threading.Thread(target=worker, args=(i, args))
        for i, args in enumerate(args_list)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    return results


class TestStock:
    def test_concurrent_checkouts_never_oversell(self, session, make_user, make_product):
        product = make_product(100, quantity=5)
        buyers = [make_user() for _ in range(6)]
        for b in buyers:
            cart_service.add_line(session, b.id, product, 2)
        buyer_ids = [b.id for b in buyers]

        def place(user_id):
            with Session(engine) as s:
                return checkout(s, s.get(User, user_id)).id

        results = run_together(place, [(uid,) for uid in buyer_ids])

        placed = [r for kind, r in results if kind == "ok"]
        refused = [r for kind, r in results if kind == "error"]
        assert len(placed) == 2
        assert all(isinstance(e, InsufficientStockError) for e in refused)

        stored = reload(session, Product, product.id)
        assert stored.quantity == 1
        assert stored.sold == 4
        assert len(session.exec(select(Order)).all()) == 2


class TestCoupon:
    def test_single_use_under_race(self, session, buyer, make_coupon):
        coupon_id = make_coupon(buyer, "RACE", discount_amount=Decimal("10")).id

        def burn(order_id):
            with Session(engine) as s:
                try:
                    coupon_service.consume(s, coupon_id, order_id, Decimal("10"))
                    s.commit()
                except CouponRejectedError:
                    s.rollback()
                    raise
                return order_id

        results = run_together(burn, [(i,) for i in range(1, 9)])

        winners = [r for kind, r in results if kind == "ok"]
        losers = [r for kind, r in results if kind == "error"]
        assert len(winners) == 1
        assert all(isinstance(e, CouponRejectedError) for e in losers)
        assert reload(session, Coupon, coupon_id).order_id == winners[0]


class TestCart:
    def test_concurrent_adds_keep_total_consistent(self, session, buyer, make_product, monkeypatch):
        monkeypatch.setattr(settings, "cart_mutation_retries", 50)
        product_id = make_product(25, quantity=100).id
        cart_service.get_or_create_cart(session, buyer.id)
        buyer_id = buyer.id

        def add(_):
            with Session(engine) as s:
                cart_service.add_line(s, buyer_id, s.get(Product, product_id), 1)

        results = run_together(add, [(i,) for i in range(8)])
        added = sum(1 for kind, _ in results if kind == "ok")

        assert all(kind == "ok" or isinstance(r, ConflictError) for kind, r in results)
        cart = cart_of(session, buyer)
        assert cart.items[0].quantity == added
        assert cart.total == Decimal("25") * added
        assert cart_service.reconcile(session, buyer.id)["consistent"] is True


class TestPayment:
    def test_one_active_payment_per_order(self, session, buyer, scenario_cart):
        order = checkout(session, buyer)
        buyer_id, order_id = buyer.id, order.id

        def pay(_):
            with Session(engine) as s:
                return payment_service.create_payment(s, s.get(User, buyer_id), order_id, "qr_code").id

        results = run_together(pay, [(i,) for i in range(4)])

        assert len([r for kind, r in results if kind == "ok"]) == 1
        assert all(isinstance(r, ConflictError) for kind, r in results if kind == "error")
        session.expire_all()
        assert len(session.exec(select(Payment).where(Payment.order_id == order_id)).all()) == 1

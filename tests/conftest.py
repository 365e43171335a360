import os
import tempfile
from decimal import Decimal

import pytest

# settings are read at import time; point them at a throwaway database first
_TMP_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["SERVER_URL"] = "http://testserver"
os.environ["SLIP_REVIEW_REQUIRED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from marketplace import models  # noqa: E402,F401
from marketplace.database import engine  # noqa: E402
from marketplace.models.cart import Cart  # noqa: E402
from marketplace.models.coupon import Coupon  # noqa: E402
from marketplace.models.product import Product  # noqa: E402
from marketplace.models.store import Store  # noqa: E402
from marketplace.models.user import User  # noqa: E402
from marketplace.notifications.live import registry  # noqa: E402
from marketplace.services import cart_service  # noqa: E402
from marketplace.utils.token import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    registry.clear()
    registry.bind_loop(None)
    yield
    registry.clear()


@pytest.fixture()
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture()
def make_user(session):
    counter = {"n": 0}

    def _make(role="user", **fields):
        counter["n"] += 1
        user = User(
            name=fields.pop("name", f"{role.title()} {counter['n']}"),
            email=fields.pop("email", f"{role}{counter['n']}@example.com"),
            phone=fields.pop("phone", "0812345678"),
            address=fields.pop("address", "99 Sukhumvit Rd, Bangkok"),
            role=role,
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture()
def buyer(make_user):
    return make_user("user", name="Buyer")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", name="Admin")


@pytest.fixture()
def seller(make_user):
    return make_user("seller", name="Seller")


@pytest.fixture()
def store(session, seller):
    store = Store(name="Seller Store", owner_id=seller.id)
    session.add(store)
    session.commit()
    session.refresh(store)
    return store


@pytest.fixture()
def make_product(session, store):
    def _make(price, quantity=10, title=None, store_id=None):
        product = Product(
            title=title or f"Product {price}",
            price=Decimal(str(price)),
            quantity=quantity,
            sold=0,
            store_id=store_id if store_id is not None else store.id,
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make


@pytest.fixture()
def make_coupon(session):
    def _make(user, code="SAVE100", **fields):
        coupon = Coupon(code=code, user_id=user.id, **fields)
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture()
def scenario_cart(session, buyer, make_product):
    """Cart of 2 x 100 (product 1) and 1 x 50 (product 2)."""
    p1 = make_product(100, quantity=10, title="Keyboard")
    p2 = make_product(50, quantity=5, title="Mouse")
    cart_service.add_line(session, buyer.id, p1, 2)
    cart_service.add_line(session, buyer.id, p2, 1)
    return p1, p2


@pytest.fixture()
def client():
    from marketplace.main import app

    with TestClient(app) as c:
        yield c


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def reload(session: Session, model, pk):
    session.expire_all()
    return session.get(model, pk)


def cart_of(session: Session, user: User) -> Cart:
    session.expire_all()
    return cart_service.get_cart(session, user.id)

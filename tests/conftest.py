import os

# przed importem aplikacji - silnik i celery nie moga siegac do postgresa / redisa
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_lock_service, get_shipping_calculator
from app.data.database import Base, get_db
from app.data.models import (
    AddressModel,
    CartItemModel,
    CartModel,
    CouponModel,
    GiftCardModel,
    ProductVariantModel,
    UserCouponModel,
    UserModel,
)
from app.domain.schemas import CheckoutIn
from app.main import app
from app.services.checkout_service import CheckoutService
from app.services.pricing import FlatRateShipping
from app.services.stock_service import StockService
from app.utils.time import utcnow


class FakeLockService:
    """In-process stand-in for the Redis variant lock."""

    def __init__(self):
        self.locks = {}

    def acquire_variant_lock(self, variant_id: int, owner: str, ttl: int) -> bool:
        if variant_id in self.locks:
            return False
        self.locks[variant_id] = owner
        return True

    def release_variant_lock(self, variant_id: int, owner: str) -> bool:
        if self.locks.get(variant_id) == owner:
            del self.locks[variant_id]
            return True
        return False


@pytest.fixture(scope="function")
def db_session():
    """
    Creates a new, isolated in-memory database session for each test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def notifications(mocker):
    return mocker.patch(
        "app.services.notification_service.NotificationService.send_order_notification",
        return_value=None,
    )


@pytest.fixture
def lock_service():
    return FakeLockService()


@pytest.fixture
def stock_service(db_session, lock_service):
    return StockService(db_session, lock_service)


@pytest.fixture
def checkout_service(db_session, stock_service):
    return CheckoutService(db_session, stock_service, shipping=FlatRateShipping(Decimal("30.00")))


@pytest.fixture
def client(db_session, lock_service):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    app.dependency_overrides[get_shipping_calculator] = lambda: FlatRateShipping(Decimal("30.00"))

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def user(db_session):
    user = UserModel(id=1, name="Test User", email="test@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session):
    user = UserModel(id=2, name="Other User", email="other@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def address(db_session, user):
    address = AddressModel(
        user_id=user.id,
        full_name="Test User",
        line1="Marszalkowska 1",
        city="Warszawa",
        postal_code="00-001",
        country="PL",
    )
    db_session.add(address)
    db_session.commit()
    return address


@pytest.fixture
def variants(db_session):
    items = [
        ProductVariantModel(id=10, product_id=100, sku="SKU-10", price=Decimal("500.00"), stock=5),
        ProductVariantModel(id=11, product_id=110, sku="SKU-11", price=Decimal("200.00"), stock=5),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


@pytest.fixture
def make_cart(db_session, stock_service, user):
    """Cart with lines [(variant_id, quantity, unit_price), ...], each line holding stock."""

    def _make(lines, user_id=None):
        owner = user_id or user.id
        cart = CartModel(
            user_id=owner,
            session_id=f"session-{owner}",
            status="ACTIVE",
            version=1,
            expires_at=utcnow() + timedelta(minutes=15),
        )
        db_session.add(cart)
        db_session.commit()

        for variant_id, quantity, price in lines:
            hold = stock_service.reserve(variant_id, quantity, cart.session_id, owner)
            assert hold.success, hold.message
            db_session.add(
                CartItemModel(
                    cart_id=cart.id,
                    product_id=variant_id * 10,
                    variant_id=variant_id,
                    quantity=quantity,
                    price=Decimal(price),
                    stock_reservation_id=hold.reservation_id,
                )
            )
        db_session.commit()
        return cart

    return _make


@pytest.fixture
def cart(make_cart, variants):
    #subtotal 700.00
    return make_cart([(10, 1, "500.00"), (11, 1, "200.00")])


@pytest.fixture
def make_coupon(db_session, user):
    def _make(code="SAVE10", type="PERCENTAGE", value="10", user_id=None, **kwargs):
        coupon = CouponModel(code=code, type=type, value=Decimal(value), is_active=True, usage_count=0, **kwargs)
        db_session.add(coupon)
        db_session.flush()
        grant = UserCouponModel(user_id=user_id or user.id, coupon_id=coupon.id, is_used=False)
        db_session.add(grant)
        db_session.commit()
        return coupon, grant

    return _make


@pytest.fixture
def make_gift_card(db_session, user):
    def _make(code="GIFT-100", balance="100.00", user_id=None, **kwargs):
        kwargs.setdefault("valid_until", utcnow() + timedelta(days=30))
        card = GiftCardModel(
            code=code,
            initial_balance=Decimal(balance),
            current_balance=Decimal(balance),
            status="ACTIVE",
            user_id=user_id,
            **kwargs,
        )
        db_session.add(card)
        db_session.commit()
        return card

    return _make


@pytest.fixture
def checkout_payload(cart, address):
    def _payload(**overrides):
        data = {
            "cart_id": cart.id,
            "shipping_address_id": address.id,
            "billing_address_id": address.id,
            "payment_method": "CREDIT_CARD",
        }
        data.update(overrides)
        return CheckoutIn(**data)

    return _payload

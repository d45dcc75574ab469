import os

# Must be set before any storefront module reads its configuration.
os.environ["DATABASE_URL"] = "sqlite:///./.pytest-storefront.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OTEL_ENABLED"] = "false"
os.environ["PYROSCOPE_ENABLED"] = "false"
os.environ["SEED_DATA"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.database import build_engine, build_session_factory, get_db
from storefront.main import create_app
from storefront.models import Base, Category, Order, OrderItem, Product, User, ROLE_ADMIN
from storefront.security import create_access_token, hash_password


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app(session_factory):
    app = create_app(rate_limit=False, init_database=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def make(role="user", is_active=True, password="secret123", email=None):
        counter["n"] += 1
        user = User(
            name=f"Test User {counter['n']}",
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role=ROLE_ADMIN, email="admin@example.com")


@pytest.fixture
def category(db):
    category = Category(name="Electronics", description="Gadgets")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_product(db, category):
    counter = {"n": 0}

    def make(stock=5, price="10.00", is_active=True, name=None, category_id=None):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            description="A product for testing",
            price=Decimal(price),
            stock=stock,
            category_id=category_id or category.id,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product

    return make


@pytest.fixture
def make_order(db):
    """Insert an order directly, bypassing stock reservation."""

    def make(user, lines, status="pending", payment_method="credit_card"):
        order = Order(
            user_id=user.id,
            total_amount=sum(Decimal(price) * qty for _, qty, price in lines),
            status=status,
            shipping_address="1 Test Street",
            payment_method=payment_method,
        )
        db.add(order)
        db.flush()
        for product, qty, price in lines:
            db.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=qty,
                price=Decimal(price),
                subtotal=Decimal(price) * qty,
            ))
        db.commit()
        return order

    return make


@pytest.fixture
def auth_headers():
    def headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return headers


@pytest.fixture
def stock_of(session_factory):
    """Read a product's stock through a short-lived session."""

    def read(product_id):
        session = session_factory()
        try:
            return session.get(Product, product_id).stock
        finally:
            session.close()

    return read

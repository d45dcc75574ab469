"""Database connection and session management."""
import logging
from decimal import Decimal
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from storefront.config import DATABASE_URL, SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD
from storefront.models import Base, Category, Product, User, ROLE_ADMIN
from storefront.security import hash_password

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL engines get the connection pool settings; SQLite engines are
    switched to ``BEGIN IMMEDIATE`` so that concurrent writers serialize the
    way row locks do on a server database. Every SQLite transaction, reads
    included, holds the database write lock until it ends, so sessions should
    not sit in an open transaction; see ``build_session_factory``.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Configured engine
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,
        pool_timeout=30,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    # Committed objects stay readable without starting a new transaction,
    # which on SQLite would take the write lock again.
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(DATABASE_URL)

SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def seed_data(db: Session) -> None:
    """Insert sample categories, products and an admin account into an empty store."""
    if db.query(Category).count() == 0:
        electronics = Category(name="Electronics", description="Gadgets and devices")
        furniture = Category(name="Furniture", description="Home and office furniture")
        db.add_all([electronics, furniture])
        db.flush()

        products = [
            Product(name="Laptop", description="14 inch ultrabook", price=Decimal("999.99"),
                    stock=50, category_id=electronics.id, brand="Acme"),
            Product(name="Smartphone", description="6.1 inch OLED phone", price=Decimal("599.99"),
                    stock=100, category_id=electronics.id, brand="Acme"),
            Product(name="Headphones", description="Noise cancelling over-ear", price=Decimal("99.99"),
                    stock=200, category_id=electronics.id),
            Product(name="Monitor", description="27 inch 4K display", price=Decimal("299.99"),
                    stock=75, category_id=electronics.id),
            Product(name="Keyboard", description="Mechanical keyboard", price=Decimal("79.99"),
                    stock=150, category_id=electronics.id),
            Product(name="Desk Chair", description="Ergonomic office chair", price=Decimal("199.99"),
                    stock=30, category_id=furniture.id),
            Product(name="Standing Desk", description="Height adjustable desk", price=Decimal("449.00"),
                    stock=20, category_id=furniture.id),
        ]
        db.add_all(products)
        logger.info("Seeded database with sample catalog", extra={
            "categories": 2,
            "products": len(products)
        })

    if db.query(User).filter(User.role == ROLE_ADMIN).count() == 0:
        db.add(User(
            name="Administrator",
            email=SEED_ADMIN_EMAIL,
            password_hash=hash_password(SEED_ADMIN_PASSWORD),
            role=ROLE_ADMIN,
        ))
        logger.info("Seeded admin account", extra={"email": SEED_ADMIN_EMAIL})

    db.commit()


def init_db(bind: Engine = None, seed: bool = False) -> None:
    """Initialize database tables and optionally seed data."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    if seed:
        db = build_session_factory(bind)()
        try:
            seed_data(db)
        finally:
            db.close()

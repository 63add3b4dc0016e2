import os

# Configuration is read at import time by models and main.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, Category, Product, LoyaltyAccount


@pytest.fixture
def engine():
    """An in-memory SQLite database shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db_session):
    """A small catalog: lighting, sensors and a sold-out camera."""
    lighting = Category(name="Smart Lighting", slug="smart-lighting")
    sensors = Category(name="Sensors", slug="sensors")
    db_session.add_all([lighting, sensors])
    db_session.flush()

    products = {
        "bulb": Product(
            name="SONOFF Smart Bulb", slug="sonoff-smart-bulb", description="WiFi dimmable bulb",
            price=450.0, stock=20, brand="SONOFF", protocol="WiFi", featured=True,
            category_id=lighting.id,
        ),
        "strip": Product(
            name="LED Strip 5m", slug="led-strip-5m", description="RGB light strip",
            price=850.0, stock=5, brand="Govee", protocol="WiFi", category_id=lighting.id,
        ),
        "motion": Product(
            name="Zigbee Motion Sensor", slug="zigbee-motion-sensor", description="PIR sensor",
            price=550.0, stock=10, brand="Aqara", protocol="Zigbee", category_id=sensors.id,
        ),
        "camera": Product(
            name="Security Camera Pro", slug="security-camera-pro", description="1080p camera",
            price=1500.0, stock=0, brand="SONOFF", protocol="WiFi", category_id=sensors.id,
        ),
    }
    db_session.add_all(products.values())
    db_session.commit()
    for p in products.values():
        db_session.refresh(p)
    return products


@pytest.fixture
def member(db_session):
    """A silver member with 1200 lifetime points and 300 to spend."""
    account = LoyaltyAccount(
        email="member@example.com", points_balance=300, lifetime_points=1200, tier="silver",
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account

import os
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

import stockroom.models  # noqa: F401
from stockroom.core.deps import get_db
from stockroom.db.base import Base
from stockroom.main import app
from stockroom.schemas.item import ItemCreate
from stockroom.schemas.purchase import PurchaseCreate
from stockroom.services.item_service import create_item
from stockroom.services.purchase_service import create_purchase


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield session_local
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def test_context(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_factory

    app.dependency_overrides.clear()


@pytest.fixture()
def make_item(db_session):
    def _make(sku: str, *, name: str | None = None, mrp: str = "100", **extra):
        return create_item(
            db_session,
            ItemCreate(sku=sku, name=name or f"Item {sku}", mrp_price=Decimal(mrp), **extra),
        )

    return _make


@pytest.fixture()
def stock_in(db_session):
    """Record a single-line purchase of ``quantity`` units at ``unit_cost``."""

    def _stock_in(item, quantity: int, unit_cost: str, *, purchase_date: date = date(2026, 10, 1), **extra):
        return create_purchase(
            db_session,
            PurchaseCreate(
                purchase_date=purchase_date,
                line_items=[
                    {
                        "item_id": item.id,
                        "quantity_units": quantity,
                        "unit_cost_price": unit_cost,
                        **extra,
                    }
                ],
            ),
        )

    return _stock_in

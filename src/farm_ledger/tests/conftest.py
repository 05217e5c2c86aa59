"""Pytest configuration and fixtures for service layer tests."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from farm_ledger.models import BirdType, InventoryType, UserRole
from farm_ledger.models.base import Base, LocalBase
from farm_ledger.services import database as db_module
from farm_ledger.services.session_context import SessionContext
from farm_ledger.utils.config import reset_config
from farm_ledger.utils.constants import ENV_DATABASE_URL, ENV_OUTBOX_DATABASE_URL


def _install_databases(monkeypatch, ledger_url, outbox_url):
    """Create both databases and point the global session factories at them."""
    monkeypatch.setenv(ENV_DATABASE_URL, ledger_url)
    monkeypatch.setenv(ENV_OUTBOX_DATABASE_URL, outbox_url)
    reset_config()

    engine = db_module.create_database_engine(ledger_url)
    outbox_engine = db_module.create_database_engine(outbox_url)
    Base.metadata.create_all(engine)
    LocalBase.metadata.create_all(outbox_engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    outbox_factory = sessionmaker(bind=outbox_engine, expire_on_commit=False)

    # Monkey-patch the global session factories for tests
    monkeypatch.setattr(db_module, "get_session_factory", lambda: session_factory)
    monkeypatch.setattr(db_module, "get_outbox_session_factory", lambda: outbox_factory)
    return engine, outbox_engine, session_factory


@pytest.fixture(scope="function")
def test_db(monkeypatch):
    """Provide clean in-memory ledger and outbox databases for each test.

    Yields the ledger session factory so tests can inspect rows directly.
    """
    engine, outbox_engine, session_factory = _install_databases(
        monkeypatch, "sqlite:///:memory:", "sqlite:///:memory:"
    )

    yield session_factory

    Base.metadata.drop_all(engine)
    LocalBase.metadata.drop_all(outbox_engine)
    engine.dispose()
    outbox_engine.dispose()
    reset_config()


@pytest.fixture(scope="function")
def file_db(monkeypatch, tmp_path):
    """File-backed databases, for tests that need independent connections."""
    engine, outbox_engine, session_factory = _install_databases(
        monkeypatch,
        f"sqlite:///{tmp_path / 'ledger.db'}",
        f"sqlite:///{tmp_path / 'outbox.db'}",
    )

    yield session_factory

    engine.dispose()
    outbox_engine.dispose()
    reset_config()


@pytest.fixture
def admin_context():
    return SessionContext(user_id="admin-1", role=UserRole.ADMIN, email="admin@granja.co")


@pytest.fixture
def operator_context():
    return SessionContext(user_id="galponero-1", role=UserRole.GALPONERO, email="op@granja.co")


@pytest.fixture
def sample_batch(test_db):
    """A broiler batch of 100 birds."""
    from farm_ledger.services import batch_service

    return batch_service.create_batch(name="Lote 1", initial_population=100, purchase_unit_price="1.50")


@pytest.fixture
def layer_batch(test_db):
    """A layer batch of 200 hens."""
    from farm_ledger.services import batch_service

    return batch_service.create_batch(
        name="Ponedoras A", initial_population=200, bird_type=BirdType.LAYER
    )


@pytest.fixture
def feed_item(test_db):
    """50 kg of feed at 2.00 per kg."""
    from farm_ledger.services import inventory_service

    return inventory_service.create_item(
        product_name="Concentrado inicio",
        unit="kg",
        item_type=InventoryType.FEED,
        current_stock=Decimal("50"),
        min_stock=Decimal("10"),
        unit_price=Decimal("2.00"),
    )


@pytest.fixture
def load(test_db):
    """Return a function that reads an entity in a fresh session."""

    def _load(model, entity_id):
        session = test_db()
        try:
            return session.get(model, entity_id)
        finally:
            session.close()

    return _load

"""Shared pytest fixtures for cambio tests."""

import tempfile
import os
from collections import defaultdict
from decimal import Decimal
import pytest

from cambio.database.factories import create_sqlite_database
from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.passthrough import PassThroughService
from cambio.domain.reconciliation import ReconciliationService
from cambio.domain.settlement import SettlementService
from cambio.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def client_service(temp_db):
    """Create a ClientService with a temporary database."""
    return ClientService(temp_db)


@pytest.fixture
def asset_service(temp_db):
    """Create an AssetService with a temporary database."""
    return AssetService(temp_db)


@pytest.fixture
def house(client_service):
    """Create the house account."""
    return client_service.ensure_house_account()


@pytest.fixture
def transaction_service(temp_db, house):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db)


@pytest.fixture
def settlement_service(temp_db, transaction_service):
    """Create a SettlementService sharing the transaction service."""
    return SettlementService(temp_db, transactions=transaction_service)


@pytest.fixture
def reconciliation_service(temp_db, transaction_service):
    """Create a ReconciliationService sharing the transaction service."""
    return ReconciliationService(temp_db, transactions=transaction_service)


@pytest.fixture
def passthrough_service(temp_db, transaction_service):
    """Create a PassThroughService sharing the transaction service."""
    return PassThroughService(temp_db, transactions=transaction_service)


@pytest.fixture
def clients(client_service, house):
    """Create sample clients and return their IDs by name."""
    return {name: client_service.create_client(name) for name in ("Ana", "Bruno", "Carla")}


@pytest.fixture
def assets(asset_service):
    """Create sample assets and return their IDs by name."""
    return {
        "USD": asset_service.create_asset("USD"),
        "ARS": asset_service.create_asset("ARS"),
        "CHEQUE": asset_service.create_asset("Cheque", is_immutable=True),
    }


@pytest.fixture
def balance_of(temp_db):
    """Return a helper reading one balance amount (None when no row exists)."""

    def _balance_of(client_id, asset_id):
        balance = temp_db.get_balance(client_id, asset_id)
        return balance.amount if balance is not None else None

    return _balance_of


@pytest.fixture
def assert_zero_sum(temp_db):
    """Return a helper asserting that balances of every asset sum to zero."""

    def _assert_zero_sum():
        totals = defaultdict(Decimal)
        for balance in temp_db.list_balances():
            totals[balance.asset_id] += balance.amount
        for asset_id, total in totals.items():
            assert total == 0, f"asset {asset_id} balances sum to {total}"

    return _assert_zero_sum


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()

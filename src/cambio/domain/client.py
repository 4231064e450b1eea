"""Client domain service."""

import logging
from typing import Optional

from cambio.config import DEFAULT_HOUSE_ACCOUNT_NAME
from cambio.database.base import Database
from cambio.domain.entities import Balance, Client as ClientEntity, HouseAccount, PendingBalance
from cambio.domain.errors import ValidationError

logger = logging.getLogger(__name__)


class ClientService:
    """Service for managing clients and the house account."""

    def __init__(self, db: Database, house_account_name: str = DEFAULT_HOUSE_ACCOUNT_NAME):
        """Initialize client service.

        Args:
            db: Database instance
            house_account_name: Name of the client row acting as house account
        """
        self.db = db
        self.house_account_name = house_account_name

    def create_client(self, name: str, notes: Optional[str] = None) -> int:
        """Create a new client.

        Args:
            name: Client name
            notes: Optional notes

        Returns:
            Client ID

        Raises:
            ValidationError: If the name is empty, reserved or already exists
        """
        name = name.strip()
        if not name:
            raise ValidationError("Client name cannot be empty")
        if name == self.house_account_name:
            raise ValidationError(f"'{name}' is reserved for the house account")
        if self.db.get_client_by_name(name) is not None:
            raise ValidationError(f"Client with name '{name}' already exists")

        client_id = self.db.create_client(name=name, notes=notes)
        logger.info("Created client %s (%s)", client_id, name)
        return client_id

    def ensure_house_account(self) -> HouseAccount:
        """Create the house account client row if it does not exist yet.

        Returns:
            The house account
        """
        client = self.db.get_client_by_name(self.house_account_name)
        if client is None:
            client_id = self.db.create_client(name=self.house_account_name, notes="System house account")
            logger.info("Created house account as client %s", client_id)
            return HouseAccount(client_id=client_id, name=self.house_account_name)
        return HouseAccount(client_id=client.id, name=client.name)

    def get_client(self, client_id: int) -> Optional[ClientEntity]:
        """Get client by ID.

        Returns:
            Client entity or None if not found
        """
        return self.db.get_client(client_id)

    def get_client_by_name(self, name: str) -> Optional[ClientEntity]:
        return self.db.get_client_by_name(name)

    def list_clients(self, include_house: bool = False) -> list[ClientEntity]:
        """List clients, without the house account unless asked for."""
        clients = self.db.list_clients()
        if include_house:
            return clients
        return [c for c in clients if c.name != self.house_account_name]

    def get_balances(self, client_id: int) -> list[Balance]:
        """List a client's balances by asset."""
        return self.db.list_balances(client_id=client_id)

    def get_pending_balances(self, client_id: int) -> list[PendingBalance]:
        """List a client's outstanding residuals of partially settled transactions."""
        return self.db.list_pending_balances(client_id=client_id)

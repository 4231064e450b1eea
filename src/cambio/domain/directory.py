"""Lookups of clients, assets and the house account used by the ledger services."""

import logging
from typing import Optional

from cambio.config import DEFAULT_HOUSE_ACCOUNT_NAME
from cambio.database.base import Database
from cambio.domain.entities import Asset, Client, Denomination, HouseAccount
from cambio.domain.errors import (
    NotFoundError,
    asset_not_found,
    client_not_found,
    house_account_not_found,
)

logger = logging.getLogger(__name__)


class Directory:
    """Read access to clients, assets and denominations.

    The house account is resolved on first use and cached for the lifetime of
    the directory. Exactly one client row carries the configured house-account
    name (client names are unique).
    """

    def __init__(self, db: Database, house_account_name: str = DEFAULT_HOUSE_ACCOUNT_NAME):
        """Initialize directory.

        Args:
            db: Database instance
            house_account_name: Name of the client row acting as house account
        """
        self.db = db
        self.house_account_name = house_account_name
        self._house: Optional[HouseAccount] = None

    def find_client(self, client_id: int) -> Client:
        """Get a client or raise NotFoundError."""
        client = self.db.get_client(client_id)
        if client is None:
            raise NotFoundError(client_not_found(client_id))
        return client

    def find_house_account(self) -> HouseAccount:
        """Get the house account or raise NotFoundError."""
        if self._house is None:
            client = self.db.get_client_by_name(self.house_account_name)
            if client is None:
                raise NotFoundError(house_account_not_found(self.house_account_name))
            self._house = HouseAccount(client_id=client.id, name=client.name)
            logger.debug("Resolved house account to client %s", client.id)
        return self._house

    def is_house(self, client_id: int) -> bool:
        """Return True if the client is the house account."""
        return client_id == self.find_house_account().client_id

    def find_asset(self, asset_id: int) -> Asset:
        """Get an asset or raise NotFoundError."""
        asset = self.db.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(asset_not_found(asset_id))
        return asset

    def immutable_asset_ids(self, asset_ids) -> frozenset[int]:
        """Return the subset of asset IDs flagged immutable."""
        return frozenset(asset_id for asset_id in set(asset_ids) if self.find_asset(asset_id).is_immutable)

    def list_denominations(self, asset_id: int) -> list[Denomination]:
        """List denominations of an asset."""
        return self.db.list_denominations(asset_id)

"""Asset domain service."""

from decimal import Decimal
from typing import Optional

from cambio.database.base import Database
from cambio.domain.entities import Asset as AssetEntity, Denomination
from cambio.domain.errors import NotFoundError, ValidationError, asset_not_found


class AssetService:
    """Service for managing assets and their note denominations."""

    def __init__(self, db: Database):
        """Initialize asset service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_asset(self, name: str, is_percentage: bool = False, is_immutable: bool = False) -> int:
        """Create a new asset.

        Args:
            name: Asset name (e.g., "USD", "Cheque")
            is_percentage: Whether amounts of the asset are percentages
            is_immutable: Whether the asset passes through without balance tracking

        Returns:
            Asset ID

        Raises:
            ValidationError: If the name is empty or already exists
        """
        name = name.strip()
        if not name:
            raise ValidationError("Asset name cannot be empty")
        if self.db.get_asset_by_name(name) is not None:
            raise ValidationError(f"Asset with name '{name}' already exists")
        return self.db.create_asset(name=name, is_percentage=is_percentage, is_immutable=is_immutable)

    def get_asset(self, asset_id: int) -> Optional[AssetEntity]:
        return self.db.get_asset(asset_id)

    def get_asset_by_name(self, name: str) -> Optional[AssetEntity]:
        return self.db.get_asset_by_name(name)

    def list_assets(self) -> list[AssetEntity]:
        """List all assets.

        Returns:
            List of asset entities
        """
        return self.db.list_assets()

    def add_denomination(self, asset_id: int, value: Decimal) -> int:
        """Add a note denomination to an asset.

        Raises:
            NotFoundError: If the asset doesn't exist
            ValidationError: If the value is not positive or already exists
        """
        if self.db.get_asset(asset_id) is None:
            raise NotFoundError(asset_not_found(asset_id))
        if value <= 0:
            raise ValidationError(f"Denomination value must be positive, got {value}")
        if any(d.value == value for d in self.db.list_denominations(asset_id)):
            raise ValidationError(f"Asset {asset_id} already has a {value} denomination")
        return self.db.create_denomination(asset_id=asset_id, value=value)

    def list_denominations(self, asset_id: int) -> list[Denomination]:
        """List denominations of an asset, highest value first.

        Raises:
            NotFoundError: If the asset doesn't exist
        """
        if self.db.get_asset(asset_id) is None:
            raise NotFoundError(asset_not_found(asset_id))
        return self.db.list_denominations(asset_id)

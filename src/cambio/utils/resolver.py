"""Utility for resolving client and asset names to IDs."""

from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.errors import NotFoundError


def _as_id(value: str | int):
    if isinstance(value, int):
        return value
    value = value.strip()
    return int(value) if value.isdigit() else None


def resolve_client(client_service: ClientService, client: str | int) -> int:
    """Resolve client name or ID to client ID.

    Args:
        client_service: ClientService instance
        client: Client name or ID (int or string representation of int)

    Returns:
        Client ID

    Raises:
        NotFoundError: If the client is not found
    """
    client_id = _as_id(client)
    if client_id is not None:
        if client_service.get_client(client_id) is None:
            raise NotFoundError(f"Client ID {client_id} not found")
        return client_id

    found = client_service.get_client_by_name(client.strip())
    if found is None:
        raise NotFoundError(f"Client '{client}' not found")
    return found.id


def resolve_asset(asset_service: AssetService, asset: str | int) -> int:
    """Resolve asset name (case-insensitive) or ID to asset ID.

    Raises:
        NotFoundError: If the asset is not found
    """
    asset_id = _as_id(asset)
    if asset_id is not None:
        if asset_service.get_asset(asset_id) is None:
            raise NotFoundError(f"Asset ID {asset_id} not found")
        return asset_id

    name = asset.strip()
    found = asset_service.get_asset_by_name(name)
    if found is None:
        for candidate in asset_service.list_assets():
            if candidate.name.lower() == name.lower():
                return candidate.id
        raise NotFoundError(f"Asset '{asset}' not found")
    return found.id

"""Asset management commands."""

import click
from cambio.cli.error_handling import handle_domain_error
from cambio.domain.asset import AssetService
from cambio.domain.errors import DomainError
from cambio.utils.amount_parser import parse_amount
from cambio.utils.resolver import resolve_asset


@click.group()
def asset_group():
    """Manage assets (currencies and instruments)."""
    pass


@asset_group.command("create")
@click.argument("name", metavar="ASSET_NAME")
@click.option("--percentage", is_flag=True, help="Amounts of this asset are percentages")
@click.option("--immutable", is_flag=True, help="Asset passes through without balance tracking (cheques, transfers)")
@click.pass_context
def create_asset(ctx, name: str, percentage: bool, immutable: bool):
    """Create a new asset.

    Examples:
        cambio asset create USD
        cambio asset create Cheque --immutable
    """
    service = AssetService(ctx.obj["db"])

    try:
        asset_id = service.create_asset(name=name, is_percentage=percentage, is_immutable=immutable)
        click.echo(f"Created asset '{name.strip()}' (ID: {asset_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@asset_group.command("list")
@click.pass_context
def list_assets(ctx):
    """List all assets."""
    service = AssetService(ctx.obj["db"])

    assets = service.list_assets()
    if not assets:
        click.echo("No assets found.")
        return

    click.echo("\nAssets:")
    click.echo("-" * 60)
    for a in assets:
        flags = []
        if a.is_immutable:
            flags.append("immutable")
        if a.is_percentage:
            flags.append("percentage")
        suffix = f" ({', '.join(flags)})" if flags else ""
        click.echo(f"ID: {a.id:3d} | {a.name}{suffix}")


@asset_group.command("add-denomination")
@click.argument("asset", metavar="ASSET")
@click.argument("value")
@click.pass_context
def add_denomination(ctx, asset: str, value: str):
    """Add a note denomination to an asset.

    Examples:
        cambio asset add-denomination USD 100
    """
    service = AssetService(ctx.obj["db"])

    try:
        asset_id = resolve_asset(service, asset)
        denomination_id = service.add_denomination(asset_id, parse_amount(value))
        click.echo(f"Added denomination {value} to asset {asset_id} (ID: {denomination_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@asset_group.command("denominations")
@click.argument("asset", metavar="ASSET")
@click.pass_context
def list_denominations(ctx, asset: str):
    """List the note denominations of an asset."""
    service = AssetService(ctx.obj["db"])

    try:
        denominations = service.list_denominations(resolve_asset(service, asset))
    except DomainError as e:
        handle_domain_error(ctx, e)

    if not denominations:
        click.echo("No denominations found.")
        return
    for d in denominations:
        click.echo(f"ID: {d.id:3d} | {d.value:,.2f}")


def register_commands(cli: click.Group) -> None:
    """Register asset commands with main CLI."""
    cli.add_command(asset_group, name="asset")

"""Client management commands."""

import click
from cambio.cli.error_handling import handle_domain_error
from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.errors import DomainError
from cambio.utils.resolver import resolve_client


def _client_service(ctx) -> ClientService:
    return ClientService(ctx.obj["db"], house_account_name=ctx.obj["settings"].house_account_name)


@click.group()
def client_group():
    """Manage clients."""
    pass


@client_group.command("create")
@click.argument("name", metavar="CLIENT_NAME")
@click.option("--notes", help="Notes about the client")
@click.pass_context
def create_client(ctx, name: str, notes: str | None):
    """Create a new client.

    Examples:
        cambio client create "Juan Perez"
        cambio client create "Importadora Sur" --notes "Pays by cheque"
    """
    service = _client_service(ctx)

    try:
        client_id = service.create_client(name=name, notes=notes)
        click.echo(f"Created client '{name.strip()}' (ID: {client_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@client_group.command("list")
@click.option("--all", "include_house", is_flag=True, help="Include the house account")
@click.pass_context
def list_clients(ctx, include_house: bool):
    """List all clients."""
    service = _client_service(ctx)

    clients = service.list_clients(include_house=include_house)
    if not clients:
        click.echo("No clients found.")
        return

    click.echo("\nClients:")
    click.echo("-" * 60)
    for c in clients:
        notes = f" | {c.notes}" if c.notes else ""
        click.echo(f"ID: {c.id:3d} | {c.name:30s}{notes}")


@client_group.command("balances")
@click.argument("client", metavar="CLIENT")
@click.option("--pending", is_flag=True, help="Also show residuals of partially settled transactions")
@click.pass_context
def client_balances(ctx, client: str, pending: bool):
    """Show a client's balance per asset.

    CLIENT can be a client name or ID. A positive balance means the client
    owes the house; a negative one means the house owes the client.

    Examples:
        cambio client balances "Juan Perez"
        cambio client balances 3 --pending
    """
    service = _client_service(ctx)
    assets = {a.id: a.name for a in AssetService(ctx.obj["db"]).list_assets()}

    try:
        client_id = resolve_client(service, client)
    except DomainError as e:
        handle_domain_error(ctx, e)

    balances = service.get_balances(client_id)
    if not balances:
        click.echo("No balances found.")
    else:
        click.echo(f"\nBalances of client {client_id}:")
        click.echo("-" * 60)
        for b in balances:
            click.echo(f"{assets.get(b.asset_id, b.asset_id)!s:15s} {b.amount:>15,.2f}")

    if pending:
        rows = [p for p in service.get_pending_balances(client_id) if p.amount != 0]
        if rows:
            click.echo("\nPending residuals:")
            click.echo("-" * 60)
            for p in rows:
                click.echo(
                    f"Transaction {p.transaction_id:5d} | {assets.get(p.asset_id, p.asset_id)!s:15s} {p.amount:>15,.2f}"
                )


def register_commands(cli: click.Group) -> None:
    """Register client commands with main CLI."""
    cli.add_command(client_group, name="client")

"""Initialize the house account."""

import click
from cambio.domain.client import ClientService


@click.command("init-house")
@click.pass_context
def init_house(ctx):
    """Create the house account client if it does not exist yet.

    The house account is the counterpart of every client balance. Its name
    comes from CAMBIO_HOUSE_ACCOUNT.
    """
    service = ClientService(ctx.obj["db"], house_account_name=ctx.obj["settings"].house_account_name)
    house = service.ensure_house_account()
    click.echo(f"House account '{house.name}' (ID: {house.client_id})")


def register_commands(cli: click.Group) -> None:
    """Register init-house command with main CLI."""
    cli.add_command(init_house)

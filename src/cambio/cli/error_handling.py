"""CLI error handling helpers."""

import click

from cambio.domain.errors import ConsistencyError, DomainError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    if isinstance(error, ConsistencyError):
        click.echo("The operation conflicted with a concurrent change; run it again.", err=True)
    ctx.exit(1)

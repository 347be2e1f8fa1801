"""Bank management commands."""

import click
from ledgerlink.cli.account_resolution import resolve_bank_or_exit
from ledgerlink.cli.error_handling import handle_domain_error
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.errors import DomainError


@click.group()
def bank_group():
    """Manage banks."""
    pass


@bank_group.command("create")
@click.argument("name", metavar="BANK_NAME")
@click.option("--color", default="#64748b", show_default=True, help="Display color")
@click.option("--icon", help="Icon name")
@click.option("--swift", "swift_bic", help="SWIFT/BIC code, used to recognize statements")
@click.pass_context
def create_bank(ctx, name: str, color: str, icon: str | None, swift_bic: str | None):
    """Create a new bank.

    Examples:
        ledgerlink bank create "Societe Generale" --swift SOGEFRPP
        ledgerlink bank create "Boursorama" --color "#e6007e"
    """
    service = BankService(ctx.obj["db"])
    try:
        bank_id = service.create_bank(name=name, color=color, icon=icon, swift_bic=swift_bic)
        click.echo(f"Created bank '{name.strip()}' (ID: {bank_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@bank_group.command("list")
@click.option("--all", "include_archived", is_flag=True, help="Include archived banks")
@click.pass_context
def list_banks(ctx, include_archived: bool):
    """List banks."""
    service = BankService(ctx.obj["db"])
    banks = service.list_banks(include_archived=include_archived)
    if not banks:
        click.echo("No banks found.")
        return

    click.echo("\nBanks:")
    click.echo("-" * 60)
    for bank in banks:
        status = "" if bank.active else " (archived)"
        swift = bank.swift_bic or "-"
        click.echo(f"ID: {bank.id:3d} | {bank.name:25s} | BIC: {swift:11s}{status}")


@bank_group.command("update")
@click.argument("bank", metavar="BANK")
@click.option("--name", help="New name")
@click.option("--color", help="New display color")
@click.option("--icon", help="New icon name (empty string to clear)")
@click.option("--swift", "swift_bic", help="New SWIFT/BIC (empty string to clear)")
@click.pass_context
def update_bank(ctx, bank: str, name, color, icon, swift_bic):
    """Update a bank.

    BANK can be a bank name or ID.
    """
    service = BankService(ctx.obj["db"])
    bank_id = resolve_bank_or_exit(ctx, service, bank)
    try:
        service.update_bank(bank_id, name=name, color=color, icon=icon, swift_bic=swift_bic)
        click.echo(f"Updated bank {bank_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@bank_group.command("archive")
@click.argument("bank", metavar="BANK")
@click.pass_context
def archive_bank(ctx, bank: str):
    """Archive a bank, keeping its accounts and transactions."""
    service = BankService(ctx.obj["db"])
    bank_id = resolve_bank_or_exit(ctx, service, bank)
    service.archive_bank(bank_id)
    click.echo(f"Archived bank {bank_id}")


@bank_group.command("unarchive")
@click.argument("bank", metavar="BANK")
@click.pass_context
def unarchive_bank(ctx, bank: str):
    """Make an archived bank active again."""
    service = BankService(ctx.obj["db"])
    bank_id = resolve_bank_or_exit(ctx, service, bank)
    service.unarchive_bank(bank_id)
    click.echo(f"Unarchived bank {bank_id}")


@bank_group.command("delete")
@click.argument("bank", metavar="BANK")
@click.option("--force", is_flag=True, help="Also delete the bank's accounts and transactions")
@click.pass_context
def delete_bank(ctx, bank: str, force: bool):
    """Delete a bank.

    A bank that still has accounts is only deleted with --force.
    """
    service = BankService(ctx.obj["db"])
    bank_id = resolve_bank_or_exit(ctx, service, bank)
    try:
        service.delete_bank(bank_id, force=force)
        click.echo(f"Deleted bank {bank_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register bank commands with main CLI."""
    cli.add_command(bank_group, name="bank")

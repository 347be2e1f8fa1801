"""Statement import commands."""

import json
from pathlib import Path

import click
from ledgerlink.cli.account_resolution import resolve_account_or_exit, resolve_bank_or_exit
from ledgerlink.cli.error_handling import handle_domain_error
from ledgerlink.domain.account import AccountService
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.entities import ImportPreview
from ledgerlink.domain.errors import DomainError
from ledgerlink.domain.import_service import ImportService


@click.group("import")
def import_group():
    """Preview and confirm statement imports."""
    pass


def _echo_preview(preview: ImportPreview) -> None:
    summary = preview.summary
    click.echo("\nImport preview:")
    click.echo(f"  Transactions: {summary.total_transactions}")
    click.echo(f"  New: {summary.new_transactions}")
    click.echo(f"  Duplicates: {summary.duplicates}")
    if preview.suggested_bank_id is not None and preview.suggested_bank_id != preview.bank_id:
        click.echo(f"  Note: the statement's BIC matches bank {preview.suggested_bank_id}")

    click.echo("\nAccounts:")
    for account in preview.accounts:
        if account.ambiguous:
            ids = ", ".join(str(i) for i in account.candidate_account_ids)
            state = f"ambiguous, choose one of {ids}"
        elif account.is_new:
            state = "new"
        else:
            state = f"existing ID {account.account_id}"
        balance = f"{account.balance} {account.currency}" if account.balance is not None else "-"
        click.echo(f"  [{account.key}] {account.account_name} ({state}) balance: {balance}")

    click.echo("\nTransactions:")
    for txn in preview.transactions:
        flags = []
        if txn.is_duplicate:
            flags.append("duplicate")
        if txn.needs_review:
            flags.append("review")
        flag_text = f" [{', '.join(flags)}]" if flags else ""
        click.echo(
            f"  {txn.date} | {txn.amount:>12} | {txn.description[:40]:40s} | "
            f"{txn.classification.value} {txn.confidence:.2f}{flag_text}"
        )


@import_group.command("preview")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--bank", required=True, help="Bank name or ID to import into")
@click.option(
    "--format",
    "declared_format",
    type=click.Choice(["ofx", "qfx", "csv", "xlsx"], case_sensitive=False),
    help="Force the statement format instead of detecting it",
)
@click.option("--account", help="Existing account receiving a statement that names no account")
@click.option("--output", type=click.Path(dir_okay=False), help="Write the preview as JSON to this file")
@click.pass_context
def preview_import(ctx, statement_file: str, bank: str, declared_format, account, output):
    """Show what importing a statement would do, without saving anything.

    Edit account names in the JSON written by --output, then apply it with
    'ledgerlink import confirm'.

    Examples:
        ledgerlink import preview releve.ofx --bank "Societe Generale" --output preview.json
        ledgerlink import preview export.csv --bank 2 --account "Compte joint"
    """
    db = ctx.obj["db"]
    bank_id = resolve_bank_or_exit(ctx, BankService(db), bank)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account) if account is not None else None

    path = Path(statement_file)
    try:
        service = ImportService(db)
        preview = service.preview_import(
            path.read_bytes(),
            bank_id,
            filename=path.name,
            declared_format=declared_format,
            target_account_id=account_id,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    _echo_preview(preview)
    if output:
        Path(output).write_text(json.dumps(preview.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        click.echo(f"\nPreview written to {output}")


@import_group.command("confirm")
@click.argument("preview_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--bank", required=True, help="Bank name or ID to import into")
@click.option(
    "--name",
    "names",
    multiple=True,
    metavar="KEY=NAME",
    help="Name of a new account, by the account key shown in the preview",
)
@click.option("--use-account", "choices", multiple=True, metavar="KEY=ID", help="Existing account for an ambiguous key")
@click.pass_context
def confirm_import(ctx, preview_file: str, bank: str, names: tuple[str, ...], choices: tuple[str, ...]):
    """Apply a preview written by 'ledgerlink import preview --output'.

    Examples:
        ledgerlink import confirm preview.json --bank "Societe Generale"
        ledgerlink import confirm preview.json --bank 1 --name "00012345678=Livret A"
    """
    db = ctx.obj["db"]
    bank_id = resolve_bank_or_exit(ctx, BankService(db), bank)

    try:
        data = json.loads(Path(preview_file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        click.echo(f"Error: Could not read preview file: {e}", err=True)
        ctx.exit(1)
        return

    try:
        preview = ImportPreview.from_dict(data)
        by_key = {account.key: account for account in preview.accounts}
        for pair in names:
            key, _, name = pair.partition("=")
            if key not in by_key or not name:
                raise click.BadParameter(f"'{pair}' does not name an account key of the preview", param_hint="--name")
            by_key[key].account_name = name
        for pair in choices:
            key, _, value = pair.partition("=")
            if key not in by_key or not value.isdigit():
                raise click.BadParameter(f"'{pair}' is not KEY=ID", param_hint="--use-account")
            by_key[key].account_id = int(value)

        result = ImportService(db).confirm_import(bank_id, preview)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo("\nImport complete:")
    click.echo(f"  Imported: {result.inserted_transactions} transactions")
    click.echo(f"  New accounts: {len(result.created_accounts)}")
    click.echo(f"  Import batch: {result.import_batch_id}")


@import_group.command("history")
@click.option("--bank", help="Only imports into this bank (name or ID)")
@click.pass_context
def import_history(ctx, bank: str | None):
    """List confirmed imports, newest first."""
    db = ctx.obj["db"]
    bank_service = BankService(db)
    bank_id = resolve_bank_or_exit(ctx, bank_service, bank) if bank is not None else None
    try:
        batches = ImportService(db).list_import_history(bank_id=bank_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not batches:
        click.echo("No imports found.")
        return

    bank_names = {b.id: b.name for b in bank_service.list_banks(include_archived=True)}
    click.echo("\nImport history:")
    click.echo("-" * 80)
    for batch in batches:
        click.echo(
            f"{batch.id:5d} | {batch.created_at:%Y-%m-%d %H:%M} | {bank_names.get(batch.bank_id, batch.bank_id)!s:20s} | "
            f"{(batch.source_format or '-').upper():4s} | {batch.inserted_count} imported, "
            f"{batch.duplicate_count} duplicates of {batch.total_count}"
        )


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_group)

"""Reclassification commands."""

import click
from ledgerlink.cli.account_resolution import resolve_account_or_exit
from ledgerlink.cli.error_handling import handle_domain_error
from ledgerlink.domain.account import AccountService
from ledgerlink.domain.entities import Classification
from ledgerlink.domain.errors import DomainError
from ledgerlink.domain.reclassification import ReclassificationService


@click.command("reclassify")
@click.argument("transaction_id", type=int)
@click.option(
    "--to",
    "classification",
    type=click.Choice([c.value for c in Classification], case_sensitive=False),
    help="Set this classification by hand instead of re-running detection",
)
@click.option("--linked-account", help="Counterpart account (name or ID) of an internal transfer")
@click.pass_context
def reclassify(ctx, transaction_id: int, classification, linked_account):
    """Re-run classification of a transaction, or override it.

    Without --to, detection runs again against the current ledger and any
    manual override is cleared. With --to, the classification is set by hand
    and kept until the next explicit reclassify.

    Examples:
        ledgerlink reclassify 42
        ledgerlink reclassify 42 --to INTERNAL_INTER_BANK --linked-account "Livret A"
    """
    db = ctx.obj["db"]
    service = ReclassificationService(db)
    linked_id = None
    if linked_account is not None:
        linked_id = resolve_account_or_exit(ctx, AccountService(db), linked_account)

    try:
        if classification is None:
            if linked_id is not None:
                raise click.UsageError("--linked-account needs --to")
            txn = service.reclassify_one(transaction_id)
        else:
            txn = service.override_classification(transaction_id, classification, linked_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    linked = f" linked to account {txn.linked_account_id}" if txn.linked_account_id is not None else ""
    manual = " (manual)" if txn.manually_classified else ""
    click.echo(
        f"Transaction {txn.id}: {txn.classification.value}{linked} "
        f"confidence {txn.classification_confidence:.2f}{manual}"
    )


@click.command("reclassify-all")
@click.option("--account", help="Only transactions of this account (name or ID)")
@click.pass_context
def reclassify_all(ctx, account):
    """Re-run classification of all automatically classified transactions.

    Manually classified transactions are left untouched.
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account) if account is not None else None
    try:
        changed = ReclassificationService(db).reclassify_automatic(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Reclassified: {changed} transactions changed")


def register_commands(cli):
    """Register reclassification commands with main CLI."""
    cli.add_command(reclassify)
    cli.add_command(reclassify_all)

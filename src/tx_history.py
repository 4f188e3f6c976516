import asyncio
import logging
from typing import Optional

import click

from log import setup_logging_to_console, setup_logging_to_file
from schemas.group_view import GroupView
from schemas.transaction import TransactionRecord
from schemas.user_session import UserSession
from services.group_service import GroupMergeError, build_group_view, merge_group
from services.stacks_api_service import (
    StacksApiError,
    TransactionNotFoundError,
    TransactionsApi,
)
from services.transaction_service import TransactionAssemblyError, TransactionCache
from services.tx_status_service import TxStatusTracker
from services.user_storage import NotSignedInError, storage_for_session
from utils.tx_utils import prefixed_tx_id

logger = logging.getLogger(__name__)

LOAD_ERRORS = (StacksApiError, TransactionAssemblyError, GroupMergeError)


def _open_cache(ctx: click.Context) -> TransactionCache:
    session = UserSession(
        identity=ctx.obj["identity"], app_private_key=ctx.obj["app_key"]
    )
    try:
        storage = storage_for_session(session, ctx.obj["storage_root"])
    except NotSignedInError:
        raise click.UsageError("Sign in first: pass --identity and --app-key")
    return TransactionCache(storage, TransactionsApi())


def _echo_record(record: TransactionRecord):
    api_data = record.api_data
    click.echo(f"{prefixed_tx_id(record.tx_id)} ({api_data.tx_status})")
    if api_data.burn_block_time_iso:
        click.echo(f"  time:   {api_data.burn_block_time_iso}")
    click.echo(f"  sender: {api_data.sender_address}")
    if api_data.contract_call:
        click.echo(
            f"  call:   {api_data.contract_call.contract_id}::{api_data.contract_call.function_name}"
        )
    click.echo(f"  events: {len(api_data.events)}/{api_data.event_count}")


def _echo_group(view: GroupView):
    click.echo(f"{view.burn_block_time_iso or '-'} ({view.tx_status})")
    marker = " *" if view.sender_is_viewer else ""
    click.echo(f"from {view.sender_address}{marker}")
    if view.shared_memo is not None:
        click.echo(f'"{view.shared_memo}"')
    for transfer in view.transfers:
        marker = " *" if transfer.is_viewer else ""
        click.echo(f"-> {transfer.recipient}{marker}  {transfer.amount_stx} STX")
        if transfer.memo:
            click.echo(f"   {transfer.memo}")


@click.group()
@click.option("--identity", envvar="STACKS_IDENTITY", help="Decentralized id of the user")
@click.option("--app-key", envvar="STACKS_APP_PRIVATE_KEY", help="App private key (hex)")
@click.option("--storage-root", default=None, help="Override the storage directory")
@click.option("--log-file", is_flag=True, help="Also write logs to logs/tx_history.log")
@click.option("--verbose", is_flag=True)
@click.pass_context
def cli(ctx, identity, app_key, storage_root, log_file, verbose):
    level = logging.DEBUG if verbose else logging.INFO
    setup_logging_to_console(level)
    if log_file:
        setup_logging_to_file(app="tx_history", level=level, logger=logger)
    ctx.obj = {"identity": identity, "app_key": app_key, "storage_root": storage_root}


@cli.command()
@click.argument("tx_id")
@click.pass_context
def show(ctx, tx_id: str):
    """Show one transaction, from the cache when possible."""
    cache = _open_cache(ctx)
    try:
        record = asyncio.run(cache.get(tx_id))
    except TransactionNotFoundError:
        click.echo(f"Transaction not found on server: {tx_id}")
        ctx.exit(1)
    except LOAD_ERRORS:
        logger.exception("Failed to get transaction %s", tx_id)
        click.echo("Failed to get transaction")
        ctx.exit(1)
    if record.api_data is None:
        click.echo(f"Transaction not found on server: {tx_id}")
        ctx.exit(1)
    _echo_record(record)


@cli.command()
@click.pass_context
def history(ctx):
    """List every transaction in the user's history."""
    cache = _open_cache(ctx)
    try:
        records = asyncio.run(cache.get_all())
    except LOAD_ERRORS:
        logger.exception("Failed to get transactions")
        click.echo("Failed to get transactions")
        ctx.exit(1)
    if not records:
        click.echo("No transactions yet.")
    for record in records:
        _echo_record(record)


@cli.command()
@click.argument("tx_ids", nargs=-1, required=True)
@click.option("--viewer", default=None, help="Address whose transfers are highlighted")
@click.pass_context
def group(ctx, tx_ids, viewer: Optional[str]):
    """Show several transactions as one list of transfers."""
    cache = _open_cache(ctx)
    try:
        record = asyncio.run(merge_group(list(tx_ids), cache.get))
    except TransactionNotFoundError:
        click.echo(f"No transactions found with id {list(tx_ids)}.")
        ctx.exit(1)
    except LOAD_ERRORS:
        logger.exception("Failed to get transactions %s", tx_ids)
        click.echo("Failed to get transactions")
        ctx.exit(1)
    if record.api_data is None:
        click.echo("Transaction not found on server.")
        ctx.exit(1)
    _echo_group(build_group_view(record, viewer))


@cli.command()
@click.argument("tx_id")
@click.pass_context
def save(ctx, tx_id: str):
    """Add a transaction id to the user's history."""
    cache = _open_cache(ctx)
    asyncio.run(cache.save(TransactionRecord(tx_id=tx_id)))
    click.echo(f"Saved {prefixed_tx_id(tx_id)}")


async def _watch(tx_id: str, timeout: Optional[float]):
    async with TxStatusTracker() as tracker:
        await tracker.track(tx_id)
        click.echo(f"Checking transaction status: {tracker.explorer_url}")
        result = await tracker.wait_resolved(timeout)
        return tracker.tx_status, result


@cli.command()
@click.argument("tx_id")
@click.option("--timeout", type=float, default=None, help="Seconds to wait")
@click.option("--result-prefix", default="Result: ")
def watch(tx_id: str, timeout: Optional[float], result_prefix: str):
    """Wait until a pending transaction succeeds or aborts."""
    try:
        tx_status, result = asyncio.run(_watch(tx_id, timeout))
    except asyncio.TimeoutError:
        click.echo("Still pending.")
        return
    click.echo(f"Status: {tx_status}")
    if result is not None:
        click.echo(f"{result_prefix}{result.repr}")


if __name__ == "__main__":
    cli()

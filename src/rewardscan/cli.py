import asyncio, contextlib, signal, time
import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .application.use_cases import category_counts, export_records, scan_contract_history
from .config import DEFAULT_DB_PATH, Settings
from .errors import ConfigError, FatalStartupError
from .logging_config import setup_logging

console = Console()


async def _run_with_signals(settings: Settings):
    """SIGINT/SIGTERM let the in-flight transaction finish, then the run winds down."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    try:
        return await scan_contract_history(settings, stop_event=stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


@click.group()
def cli():
    """rewardscan — index a reward contract's transaction history into per-method tables."""


@cli.command("scan")
@click.option("--rpc", "rpc_url", default=None, help="RPC endpoint URL [env: REWARDSCAN_RPC_URL]")
@click.option("--contract", default=None, help="Contract address [env: REWARDSCAN_CONTRACT]")
@click.option("--from-block", type=int, default=None, help="First block [env: REWARDSCAN_START_BLOCK]")
@click.option("--to-block", type=int, default=None, help="Last block, default chain head [env: REWARDSCAN_END_BLOCK]")
@click.option("--chunk-size", type=int, default=None, help="Blocks per eth_getLogs [env: REWARDSCAN_CHUNK_SIZE]")
@click.option("--db", "db_path", default=None, help="SQLite database path [env: REWARDSCAN_DB]")
@click.option("--abi", "abi_path", default=None, help="Contract ABI JSON [env: REWARDSCAN_ABI]")
@click.option("--manifest", "manifest_path", default=None,
              help="JSONL manifest path for resume/skip [env: REWARDSCAN_MANIFEST]")
@click.option("--rerun-failed/--no-rerun-failed", default=True, show_default=True,
              help="Re-scan chunks marked failed in the manifest")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING … [env: REWARDSCAN_LOG_LEVEL]")
def scan_cmd(rpc_url, contract, from_block, to_block, chunk_size, db_path, abi_path, manifest_path,
             rerun_failed, log_level):
    """Scan [from-block, to-block] for contract transactions and store one record per transaction."""
    try:
        settings = Settings.from_env().override(
            rpc_url=rpc_url, contract_address=contract, start_block=from_block, end_block=to_block,
            chunk_size=chunk_size, db_path=db_path, abi_path=abi_path, manifest_path=manifest_path,
            rerun_failed=rerun_failed, log_level=log_level.upper() if log_level else None,
        ).validate()
    except ConfigError as e:
        raise click.UsageError(str(e))

    setup_logging(settings.log_level)
    t0 = time.time()
    try:
        report = asyncio.run(_run_with_signals(settings))
    except (ConfigError, FatalStartupError) as e:
        raise click.ClickException(str(e))

    elapsed = time.time() - t0
    persisted = "  ".join(f"{k}={v}" for k, v in sorted(report.persisted_by_category.items())) or "none"
    console.print(Panel(
        f"[green]chunks_ok[/]={report.chunks_ok}  "
        f"[red]chunks_failed[/]={report.chunks_failed}  "
        f"[yellow]chunks_skipped[/]={report.chunks_skipped}  (chunks={report.chunks_total})\n"
        f"txs_seen={report.txs_seen}  [green]persisted[/]={report.txs_persisted}  "
        f"existing={report.txs_existing}  foreign={report.txs_foreign}  unknown={report.txs_unknown}  "
        f"duplicate={report.txs_duplicate}  [red]failed[/]={report.txs_failed}\n"
        f"persisted by table: {persisted}",
        title="[bold]interrupted[/]" if report.interrupted else "[bold]done[/]",
        subtitle=f"{elapsed:.2f}s",
    ))
    if report.interrupted:
        raise SystemExit(130)


@cli.command("stats")
@click.option("--db", "db_path", default=DEFAULT_DB_PATH, show_default=True, envvar="REWARDSCAN_DB")
def stats_cmd(db_path):
    """Print the number of stored records per table."""
    try:
        counts = asyncio.run(category_counts(db_path))
    except FatalStartupError as e:
        raise click.ClickException(str(e))
    table = Table(title=db_path)
    table.add_column("table")
    table.add_column("records", justify="right")
    for name, n in counts.items():
        table.add_row(name, f"{n:,}")
    table.add_row("[bold]total[/]", f"[bold]{sum(counts.values()):,}[/]")
    console.print(table)


@cli.command("export")
@click.option("--db", "db_path", default=DEFAULT_DB_PATH, show_default=True, envvar="REWARDSCAN_DB")
@click.option("--out-dir", default="records_parquet", show_default=True)
def export_cmd(db_path, out_dir):
    """Write every table to <out-dir>/<table>.parquet."""
    try:
        written = export_records(db_path, out_dir)
    except FatalStartupError as e:
        raise click.ClickException(str(e))
    for name, (path, rows) in written.items():
        console.print(f"[bold]{name}[/]: {rows:,} rows → {path}")


if __name__ == "__main__":
    cli()

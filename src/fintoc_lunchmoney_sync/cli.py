"""
Command-line interface for the Fintoc to Lunch Money sync tool.
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .clients.fintoc import FintocClient
from .clients.lunchmoney import LunchMoneyClient
from .config import (
    AccountRegistry,
    SyncConfig,
    generate_default_config,
    load_config,
    require_tokens,
)
from .models.transaction import Movement, RunSummary, SyncWindow
from .reports.excel_generator import ExcelReportGenerator
from .sync.engine import SyncEngine
from .utils.exceptions import SyncError
from .utils.logging_config import setup_logging

console = Console()

DEFAULT_CONFIG = Path("config.yaml")

config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG,
    show_default=True,
    help="Path to configuration file (YAML)",
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Sync Fintoc bank movements and balances into Lunch Money assets."""
    pass


def _prepare(config_path: Path, verbose: bool, log_file: Optional[Path] = None) -> SyncConfig:
    """Load configuration and configure logging from it."""
    config = load_config(config_path)
    level = logging.DEBUG if verbose else config.logging.level
    setup_logging(level, log_file=log_file, log_format=config.logging.format)
    return config


@main.command()
@click.argument("bank_name", default="")
@click.argument("account_name", default="")
@config_option
@click.option("--since", help="Override the sync window, e.g. 7d or '1w 2d'")
@click.option("--dry-run", is_flag=True, help="Show what would be inserted without writing")
@click.option("--concurrent", is_flag=True, help="Sync accounts in parallel")
@click.option("--report", type=click.Path(dir_okay=False, path_type=Path), help="Write an Excel report")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also log to this file")
@verbose_option
def sync(
    bank_name: str,
    account_name: str,
    config_path: Path,
    since: Optional[str],
    dry_run: bool,
    concurrent: bool,
    report: Optional[Path],
    log_file: Optional[Path],
    verbose: bool,
):
    """
    Insert missing movements and update balances.

    BANK_NAME and ACCOUNT_NAME restrict the run to one bank or one account.
    """
    try:
        config = _prepare(config_path, verbose, log_file)
        require_tokens(config)

        if concurrent:
            settings = config.sync_settings.model_copy(update={"concurrent": True})
            config = config.model_copy(update={"sync_settings": settings})

        registry = AccountRegistry(config)
        pairs = registry.pairs(bank_name, account_name)
        if not pairs:
            console.print(f"[red]No configured accounts match {_scope(bank_name, account_name)}[/red]")
            sys.exit(1)

        window = SyncWindow.from_duration(since or registry.default_window)
        _print_window(window)

        with FintocClient.from_config(config) as bank, LunchMoneyClient.from_config(config) as ledger:
            engine = SyncEngine.from_config(config, bank, ledger, dry_run=dry_run)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Syncing {len(pairs)} account(s)...", total=None)
                summary = engine.run(pairs, window)

        _display_summary(summary)

        if report:
            report_path = ExcelReportGenerator().generate_report(summary, report)
            console.print(f"\n[green]Report generated: {report_path}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    if dry_run:
        console.print("\n[yellow]Dry run - nothing was written to Lunch Money[/yellow]")
    if summary.has_failures:
        sys.exit(1)


@main.command()
@click.argument("bank_name", default="")
@click.argument("account_name", default="")
@config_option
@click.option("--since", help="Override the window, e.g. 7d")
@verbose_option
def movements(
    bank_name: str,
    account_name: str,
    config_path: Path,
    since: Optional[str],
    verbose: bool,
):
    """List bank movements in the sync window without writing anything."""
    failed = False
    try:
        config = _prepare(config_path, verbose)
        require_tokens(config, lunch_money=False)
        registry = AccountRegistry(config)
        pairs = registry.pairs(bank_name, account_name)
        if not pairs:
            console.print(f"[red]No configured accounts match {_scope(bank_name, account_name)}[/red]")
            sys.exit(1)

        window = SyncWindow.from_duration(since or registry.default_window)
        _print_window(window)

        with FintocClient.from_config(config) as bank:
            for pair in pairs:
                console.print(f"[bold]Listing movements for {pair.label}[/bold]")
                try:
                    pair.validate()
                    fetched = bank.list_movements(
                        pair.account_id, pair.link_token, window.since, window.until
                    )
                except SyncError as e:
                    console.print(f"[red]{pair.label}: {escape(str(e))}[/red]")
                    failed = True
                    continue
                console.print(_movements_table(pair.label, fetched))

    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    if failed:
        sys.exit(1)


@main.command()
@config_option
@verbose_option
def assets(config_path: Path, verbose: bool):
    """List Lunch Money assets with their ids and balances."""
    try:
        config = _prepare(config_path, verbose)
        require_tokens(config, fintoc=False)
        with LunchMoneyClient.from_config(config) as ledger:
            ledger_assets = ledger.list_assets()
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    table = Table(title="Lunch Money Assets")
    table.add_column("ID", style="blue")
    table.add_column("Name")
    table.add_column("Balance", justify="right", style="green")
    table.add_column("Currency")
    for asset in ledger_assets:
        table.add_row(str(asset.id), asset.name, f"{asset.balance:,.2f}", asset.currency)
    console.print(table)


@main.command()
@click.argument("bank_name")
@config_option
@verbose_option
def accounts(bank_name: str, config_path: Path, verbose: bool):
    """
    List the Fintoc accounts behind a bank's link token.

    Use the ids shown here as fintoc_account_id in the configuration.
    """
    try:
        config = _prepare(config_path, verbose)
        require_tokens(config, lunch_money=False)
        banks = AccountRegistry(config).banks(bank_name)
        if not banks:
            console.print(f"[red]No configured bank named {bank_name!r}[/red]")
            sys.exit(1)

        with FintocClient.from_config(config) as bank:
            found = bank.list_accounts(banks[0].link_token)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    table = Table(title=f"Fintoc Accounts: {bank_name}")
    table.add_column("ID", style="blue")
    table.add_column("Name")
    table.add_column("Official Name")
    table.add_column("Type")
    table.add_column("Currency")
    table.add_column("Number")
    for account in found:
        table.add_row(
            account.get("id", ""),
            account.get("name", ""),
            account.get("official_name", ""),
            account.get("type", ""),
            account.get("currency", ""),
            account.get("number") or "-",
        )
    console.print(table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=DEFAULT_CONFIG
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _scope(bank_name: str, account_name: str) -> str:
    if not bank_name:
        return "(no accounts configured)"
    if not account_name:
        return f"bank {bank_name!r}"
    return f"{bank_name!r} / {account_name!r}"


def _print_window(window: SyncWindow) -> None:
    console.print(
        f"[bold]Time period: {window.start:%Y-%m-%d %H:%M:%S} UTC to "
        f"{window.resolved_end:%Y-%m-%d %H:%M:%S} UTC[/bold]"
    )


def _movements_table(title: str, fetched: list[Movement]) -> Table:
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Payee")
    table.add_column("Amount", justify="right")
    table.add_column("Currency")
    table.add_column("ID", style="dim")

    for movement in fetched:
        color = "green" if movement.amount >= 0 else "red"
        payee = movement.payee or movement.description
        table.add_row(
            str(movement.posted_date),
            payee[:40] + "..." if len(payee) > 40 else payee,
            f"[{color}]{movement.amount:,}[/{color}]",
            movement.currency,
            movement.id,
        )
    return table


def _display_summary(summary: RunSummary) -> None:
    """Display per-account sync results in console."""
    table = Table(title="Sync Summary" + (" (dry run)" if summary.dry_run else ""))
    table.add_column("Account", style="cyan")
    table.add_column("Fetched", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Existing", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Status")

    for result in summary.results:
        balance = result.balance_after
        inserted = result.pending_count if summary.dry_run else result.inserted_count
        if result.skipped_movements:
            fetched = "skipped"
        else:
            fetched = str(result.movements_fetched)
        table.add_row(
            result.pair.label,
            fetched,
            str(inserted),
            str(result.existing_count),
            str(result.failed_count),
            f"{balance.amount:,} {balance.currency}" if balance else "-",
            "[green]OK[/green]" if result.succeeded else "[red]FAILED[/red]",
        )

    console.print(table)
    console.print(f"Processing time: {summary.processing_time_seconds:.2f}s")

    for result in summary.failed_results:
        if result.error is not None:
            console.print(f"[red]{result.pair.label}: {escape(result.error_message)}[/red]")
        for outcome in result.failures:
            console.print(
                f"[red]{result.pair.label}: movement {outcome.movement.id} "
                f"({outcome.movement.posted_date}, {outcome.movement.amount}) "
                f"not inserted: {escape(outcome.reason or '')}[/red]"
            )


if __name__ == "__main__":
    main()

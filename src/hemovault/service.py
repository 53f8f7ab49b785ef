"""Service bootstrap and command-line entry point for HemoVault."""
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config, load_config
from .context import AppContext
from .infrastructure.error_handling import AppError
from .models import InventoryType
from .status_server import StatusServer


def configure_logging(config: Config):
    """Add a rotating file sink at the configured level."""
    log_path = Path(config.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path / "hemovault_{time}.log"),
        rotation="1 day",
        retention="7 days",
        level=config.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra} | {message}",
    )


class HemoVaultService:
    """Runs health checks and the status server until a shutdown signal."""

    def __init__(self, config: Optional[Config] = None):
        """Initialise service."""
        self.config = config or load_config()
        self.context = AppContext.create(self.config)
        self.status_server = StatusServer(
            self.context,
            host=self.config.health.host,
            port=self.config.health.port,
        )
        self._stopped = asyncio.Event()

    def request_shutdown(self):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown requested")
        self._stopped.set()

    async def run(self):
        """Start everything and block until shutdown."""
        logger.info("HemoVault service starting...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # not supported on Windows event loops
                pass

        try:
            self.context.start()
            await self.status_server.start()
            await self._stopped.wait()
        finally:
            await self.status_server.cleanup()
            await self.context.close()
            logger.info("HemoVault service stopped")


async def check_connection(context: AppContext, console: Console) -> bool:
    """Run one connection test and print the diagnostics."""
    result = await context.database.test_connection()

    table = Table(title="Database Connection", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Connected", "[green]yes[/]" if result['connected'] else "[red]no[/]")

    if result['connected']:
        diagnostics = result['diagnostics']
        table.add_row("Response Time", f"{diagnostics['response_time_ms']} ms")
        table.add_row("Database URL", diagnostics['database_url'])
        table.add_row("Server Version", diagnostics['server_version'])
    else:
        table.add_row("Error", result['error'])

    console.print(table)
    return result['connected']


async def show_inventory(context: AppContext, console: Console, hospital_id: int):
    """Display grouped inventory and low-stock warnings for one hospital."""
    repository = context.repository
    hospital = await repository.get_hospital(hospital_id)

    for inventory_type in InventoryType:
        summaries = await repository.get_inventory(inventory_type, hospital_id)
        table = Table(title=f"{inventory_type.label} - {hospital.hospital_name}")
        table.add_column("Group", style="cyan")
        table.add_column("Bags", justify="right")
        table.add_column("Total (ml)", justify="right", style="green")
        for summary in summaries:
            table.add_row(summary.blood_group, str(summary.count), str(summary.total_amount))
        console.print(table)

    warnings = await repository.get_low_stock_warnings(hospital_id)
    if warnings:
        console.print(Panel.fit(
            "\n".join(f"[yellow]{warning}[/]" for warning in warnings),
            title="Low Stock",
        ))


async def search(context: AppContext, console: Console, query: str):
    """Display donor search results."""
    results = await context.repository.search_donors(query)
    if not results:
        console.print("[yellow]No matching bags found[/]")
        return

    table = Table(title=f"Search: {query}")
    table.add_column("Type", style="magenta")
    table.add_column("Bag", style="cyan")
    table.add_column("Donor")
    table.add_column("Group")
    table.add_column("Amount", justify="right")
    table.add_column("Expires")
    table.add_column("Hospital", style="green")
    for result in results:
        table.add_row(
            result.inventory_type.label,
            str(result.bag_id),
            result.donor_name,
            f"{result.blood_type}{result.rh}",
            str(result.amount),
            result.expiration_date.isoformat(),
            result.hospital_name,
        )
    console.print(table)


async def run_command(command: str, args: List[str], console: Console) -> int:
    config = load_config()

    if command == "serve":
        configure_logging(config)
        await HemoVaultService(config).run()
        return 0

    context = AppContext.create(config)
    try:
        if command == "check":
            return 0 if await check_connection(context, console) else 1
        if command == "init-db":
            await context.database.create_schema()
            console.print("[green]Schema ready[/]")
            return 0
        if command == "inventory" and args and args[0].isdigit():
            await show_inventory(context, console, int(args[0]))
            return 0
        if command == "search" and args:
            await search(context, console, " ".join(args))
            return 0
    except AppError as e:
        console.print(f"[red]{e.kind.name}: {e.message}[/]")
        return 1
    finally:
        await context.close()

    console.print("[red]Invalid command[/]")
    return 2


def main():
    """Main entry point."""
    console = Console()

    if len(sys.argv) < 2:
        console.print("[yellow]Usage:[/]")
        console.print("  hemovault serve                 - Run health checks and the status server")
        console.print("  hemovault check                 - Test the database connection")
        console.print("  hemovault init-db               - Create the inventory tables")
        console.print("  hemovault inventory <hospital>  - Show a hospital's inventory")
        console.print("  hemovault search <query>        - Search bags by donor name or bag id")
        return

    try:
        exit_code = asyncio.run(run_command(sys.argv[1], sys.argv[2:], console))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

# posinventory/main.py
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from .commands import payments, products, reservations, stock
from .config import POSInventoryConfig, load_config
from .context import AppContext, run_with_context
from .errors import ConfigError, apply_error_handling, exception_handler
from .logging import LoggingMode, configure_logging

app = typer.Typer(help="POS Inventory - queued, conflict-safe stock management for point-of-sale backends")
console = Console()

app.add_typer(products.app, name="product")
app.add_typer(stock.app, name="stock")
app.add_typer(reservations.app, name="reserve")
app.add_typer(payments.app, name="payments")


@app.callback()
@exception_handler
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a TOML config file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    overrides: Optional[List[str]] = typer.Option(
        None, "--set", "-s", help="Override a config value, e.g. --set queue.retry_delay=0.5"
    ),
):
    """
    POS Inventory keeps product stock consistent while many tills write at once.
    """
    try:
        config = load_config(config_file, overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    configure_logging(config, LoggingMode.DEVELOPMENT, log_file=log_file, debug=debug)
    ctx.obj = config


@app.command("init-db")
def init_db(ctx: typer.Context):
    """Create the database and apply the schema."""
    config: POSInventoryConfig = ctx.obj

    async def init(app_ctx: AppContext) -> int:
        return await app_ctx.store.get_schema_version()

    version = run_with_context(config, init)
    console.print(f"[green]Database ready[/green] at {config.database_path} (schema v{version})")


apply_error_handling(app)


if __name__ == "__main__":
    app()

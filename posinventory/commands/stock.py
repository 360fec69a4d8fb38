# posinventory/commands/stock.py
import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..context import AppContext, run_with_context
from ..models.inventory import InventoryLevel, InventoryMovement, LowStockAlert, MovementType, StockAdjustment

app = typer.Typer(help="Inspect and adjust stock levels")
console = Console()


@app.command("show")
def show_stock(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="Product ID"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show the current stock level of a product."""
    async def fetch(app_ctx: AppContext) -> InventoryLevel:
        return await app_ctx.adjuster.get_inventory(product_id)

    level = run_with_context(ctx.obj, fetch)

    if as_json:
        data = level.model_dump(mode="json")
        data["available_quantity"] = level.available_quantity
        typer.echo(json.dumps(data, indent=2))
        return

    table = Table(title=f"Stock for {product_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Stock", str(level.stock_quantity))
    table.add_row("Reserved", str(level.reserved_quantity))
    table.add_row("Available", str(level.available_quantity))
    table.add_row("Reorder Level", str(level.reorder_level))
    table.add_row("Version", str(level.version))
    console.print(table)


@app.command("adjust", context_settings={"ignore_unknown_options": True})
def adjust_stock(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="Product ID"),
    delta: int = typer.Argument(..., help="Quantity change (positive for in, negative for out)"),
    movement_type: MovementType = typer.Option(MovementType.ADJUSTMENT, "--type", "-t", help="Movement type"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason recorded in the movement ledger"),
    user_id: Optional[str] = typer.Option(None, "--user", help="User making the change"),
    order_id: Optional[str] = typer.Option(None, "--order", help="Related order ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """
    Apply a stock change.

    Fails without writing anything if the stock would go negative, or if the
    product was changed by another writer since it was read.
    """
    async def adjust(app_ctx: AppContext) -> StockAdjustment:
        return await app_ctx.adjuster.adjust_stock(
            product_id, delta, movement_type=movement_type, reason=reason, user_id=user_id, order_id=order_id
        )

    adjustment = run_with_context(ctx.obj, adjust)

    if as_json:
        typer.echo(json.dumps(adjustment.model_dump(mode="json"), indent=2))
        return

    table = Table(title="Stock Adjusted")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Product", adjustment.product_id)
    table.add_row("Quantity Change", f"{adjustment.delta:+d}")
    table.add_row("New Stock Level", str(adjustment.new_quantity))
    table.add_row("Version", str(adjustment.new_version))
    console.print(table)


@app.command("movements")
def list_movements(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="Product ID"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum number of entries"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show the movement ledger of a product, newest first."""
    async def fetch(app_ctx: AppContext) -> List[InventoryMovement]:
        return await app_ctx.adjuster.list_movements(product_id, limit=limit)

    movements = run_with_context(ctx.obj, fetch)

    if as_json:
        typer.echo(json.dumps([m.model_dump(mode="json") for m in movements], indent=2))
        return

    if not movements:
        console.print(f"[yellow]No movements recorded for {product_id}[/yellow]")
        return

    table = Table(title=f"Movements for {product_id}")
    table.add_column("Date/Time", style="cyan")
    table.add_column("Type")
    table.add_column("Change", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Reason", style="italic")

    for movement in movements:
        style = "green" if movement.quantity > 0 else "red"
        table.add_row(
            movement.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            movement.movement_type.value,
            Text(f"{movement.quantity:+d}", style=style),
            f"{movement.previous_stock} -> {movement.new_stock}",
            movement.reason or "-",
        )
    console.print(table)


@app.command("alerts")
def low_stock_alerts(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """List active products at or below their reorder level."""
    async def fetch(app_ctx: AppContext) -> List[LowStockAlert]:
        return await app_ctx.adjuster.low_stock_alerts()

    alerts = run_with_context(ctx.obj, fetch)

    if as_json:
        typer.echo(json.dumps([a.model_dump(mode="json") for a in alerts], indent=2))
        return

    if not alerts:
        console.print("[green]All products are above their reorder level[/green]")
        return

    table = Table(title="Low Stock")
    table.add_column("Product", style="cyan")
    table.add_column("Stock", justify="right", style="red")
    table.add_column("Reorder Level", justify="right")
    table.add_column("Available", justify="right")
    for alert in alerts:
        table.add_row(alert.product_name, str(alert.current_stock), str(alert.reorder_level), str(alert.available_stock))
    console.print(table)

# posinventory/commands/products.py
import json
from typing import List

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..context import AppContext, run_with_context
from ..models.product import Product

app = typer.Typer(help="Product management commands")
console = Console()


def format_vnd(amount: int) -> str:
    return f"{amount:,} VND"


def create_product_table(products: List[Product], title: str = "Products") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("SKU", style="cyan")
    table.add_column("Name")
    table.add_column("Price", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Reserved", justify="right")
    table.add_column("Reorder", justify="right")

    for product in products:
        stock_style = "red" if product.stock_quantity <= product.reorder_level else "green"
        table.add_row(
            product.id,
            product.sku,
            product.name,
            format_vnd(product.price),
            f"[{stock_style}]{product.stock_quantity}[/{stock_style}]",
            str(product.reserved_quantity),
            str(product.reorder_level),
        )
    return table


@app.command("add")
def add_product(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Product name"),
    sku: str = typer.Option(..., "--sku", "-s", help="Stock keeping unit (letters, digits, dashes)"),
    price: int = typer.Option(0, "--price", "-p", help="Unit price in VND"),
    stock: int = typer.Option(0, "--stock", help="Opening stock quantity"),
    reorder_level: int = typer.Option(0, "--reorder-level", "-r", help="Stock level that triggers a reorder alert"),
    as_json: bool = typer.Option(False, "--json", help="Print the product as JSON"),
):
    """Add a new product to the catalog."""
    try:
        product = Product(name=name, sku=sku, price=price, stock_quantity=stock, reorder_level=reorder_level)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            typer.secho(f"Invalid {field}: {error['msg']}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    async def add(app_ctx: AppContext) -> Product:
        return await app_ctx.catalog.add_product(product)

    created = run_with_context(ctx.obj, add)

    if as_json:
        typer.echo(json.dumps(created.model_dump(mode="json"), indent=2))
    else:
        console.print(f"[green]Added product {created.sku}[/green] with ID {created.id}")


@app.command("list")
def list_products(
    ctx: typer.Context,
    include_inactive: bool = typer.Option(False, "--all", help="Include inactive products"),
    as_json: bool = typer.Option(False, "--json", help="Print products as JSON"),
):
    """List products ordered by name."""
    async def fetch(app_ctx: AppContext) -> List[Product]:
        return await app_ctx.catalog.list_products(active_only=not include_inactive)

    products = run_with_context(ctx.obj, fetch)

    if as_json:
        typer.echo(json.dumps([p.model_dump(mode="json") for p in products], indent=2))
    elif not products:
        console.print("[yellow]No products found[/yellow]")
    else:
        console.print(create_product_table(products))

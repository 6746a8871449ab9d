"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos (envío, historial).
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from rich.align import Align
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import (
    Area,
    CatalogProduct,
    DraftConsumptionLine,
    DraftLineItem,
    LogicalDocument,
    OutgoingGuide,
    OutgoingSummary,
    PendingLineEdit,
    StockSnapshotEntry,
    Supplier,
)
from core.domain.money import DocumentTotals


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Evita dependencias circulares (main <-> doctor).
    - Permite desactivar banner en modos no interactivos (JSON/pipelines).
    """

    title = Text("stockdocs", style="bold cyan")
    subtitle = Text("Ingresos • Guías de consumo • Historial", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def format_money(amount: int) -> str:
    """Formato de moneda local: `$1.234.567` (sin decimales)."""

    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}".replace(",", ".")


def format_quantity(quantity: float) -> str:
    return f"{quantity:g}"


def _cell(value: str | None, default: str = "-") -> str:
    # los nombres del servidor pueden traer corchetes, que Rich lee como markup
    return escape(value) if value else default


def build_lines_table(lines: Sequence[DraftLineItem]) -> Table:
    table = Table(title="Ingress lines")
    table.add_column("#", style="dim", justify="right")
    table.add_column("SKU", style="cyan", no_wrap=True)
    table.add_column("Product", style="white")
    table.add_column("Area", style="magenta")
    table.add_column("Qty", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column("Net", justify="right", style="green")
    for position, line in enumerate(lines, 1):
        name = f"{_cell(line.name)} [yellow](new)[/yellow]" if line.is_new_product else _cell(line.name)
        table.add_row(
            str(position),
            _cell(line.sku),
            name,
            _cell(line.area_name),
            format_quantity(line.quantity),
            format_money(round(line.unit_price)),
            format_money(line.computed_net),
        )
    return table


def build_guide_lines_table(lines: Sequence[DraftConsumptionLine]) -> Table:
    table = Table(title="Guide lines")
    table.add_column("#", style="dim", justify="right")
    table.add_column("SKU", style="cyan", no_wrap=True)
    table.add_column("Product", style="white")
    table.add_column("Qty", justify="right")
    table.add_column("Origin", style="magenta")
    table.add_column("Destination", style="magenta")
    table.add_column("Reason")
    for position, line in enumerate(lines, 1):
        table.add_row(
            str(position),
            _cell(line.sku),
            _cell(line.name),
            escape(f"{format_quantity(line.quantity)} {line.unit or ''}".strip()),
            _cell(line.origin_area_name, str(line.origin_area_id)),
            _cell(line.destination_label),
            line.reason_code.value,
        )
    return table


def build_totals_panel(totals: DocumentTotals, *, title: str = "Totals") -> Panel:
    body = Text()
    body.append(f"Net:   {format_money(totals.total_net)}\n")
    body.append(f"Tax:   {format_money(totals.total_tax)}\n")
    body.append(f"Gross: {format_money(totals.total_gross)}", style="bold")
    return Panel(body, title=title, border_style="green", expand=False)


def build_documents_table(documents: Iterable[LogicalDocument]) -> Table:
    table = Table(title="Ingress history")
    table.add_column("Date", no_wrap=True)
    table.add_column("Document", style="cyan", no_wrap=True)
    table.add_column("Supplier", style="white")
    table.add_column("Items", justify="right")
    table.add_column("Net", justify="right", style="green")
    table.add_column("Gross", justify="right", style="green")
    for document in documents:
        table.add_row(
            document.date.isoformat(),
            _cell(document.document_number),
            _cell(document.supplier_name),
            str(document.item_count),
            format_money(document.total_net),
            format_money(document.total_gross),
        )
    return table


def build_rows_table(document: LogicalDocument, pending: Mapping[int, PendingLineEdit] | None = None) -> Table:
    """Filas de un documento; las que tienen edición pendiente se marcan con `*`."""

    pending = pending or {}
    title = f"Document {_cell(document.document_number)} ({_cell(document.supplier_name)})"
    table = Table(title=title)
    table.add_column("Row", style="dim", justify="right")
    table.add_column("SKU", style="cyan", no_wrap=True)
    table.add_column("Product", style="white")
    table.add_column("Area", style="magenta")
    table.add_column("Qty", justify="right")
    table.add_column("Unit cost", justify="right")
    table.add_column("Net", justify="right", style="green")
    for row in document.children:
        marker = "*" if row.id in pending else ""
        table.add_row(
            f"{row.id}{marker}",
            _cell(row.product_sku),
            _cell(row.product_name),
            _cell(row.area_name),
            format_quantity(row.quantity),
            format_money(round(row.unit_cost)),
            format_money(row.net_amount),
        )
    return table


def document_totals(document: LogicalDocument) -> DocumentTotals:
    return DocumentTotals(
        total_net=document.total_net,
        total_tax=document.total_tax,
        total_gross=document.total_gross,
    )


def build_outgoing_table(summaries: Iterable[OutgoingSummary]) -> Table:
    table = Table(title="Consumption guides")
    table.add_column("Folio", style="cyan", no_wrap=True)
    table.add_column("Date", no_wrap=True)
    table.add_column("Responsible")
    table.add_column("Destination", style="magenta")
    table.add_column("Net", justify="right", style="green")
    for summary in summaries:
        table.add_row(
            _cell(summary.folio),
            summary.date.isoformat(),
            _cell(summary.responsible),
            _cell(summary.destination),
            format_money(summary.total_net),
        )
    return table


def build_guide_detail(guide: OutgoingGuide) -> tuple[Table, Panel]:
    table = Table(title=f"Folio {_cell(guide.folio)}")
    table.add_column("Product", style="white")
    table.add_column("Origin", style="magenta")
    table.add_column("Destination", style="magenta")
    table.add_column("Type")
    table.add_column("Qty", justify="right")
    table.add_column("Net", justify="right", style="green")
    for line in guide.lines:
        kind = _cell(line.reason_code)
        if kind.upper() == "MERMA":
            kind = f"[red]{kind}[/red]"
        table.add_row(
            _cell(line.product_name),
            _cell(line.origin_area),
            _cell(line.destination_area),
            kind,
            format_quantity(line.quantity),
            format_money(line.net_amount),
        )

    body = Text()
    body.append(f"Items: {guide.item_count}\n")
    body.append(f"Units: {format_quantity(guide.total_units)}\n")
    body.append(f"Net:   {format_money(guide.total_net)}")
    if guide.has_waste:
        body.append("\nIncludes waste (MERMA)", style="bold red")
    return table, Panel(body, title="Summary", border_style="yellow", expand=False)


def build_suppliers_table(suppliers: Iterable[Supplier]) -> Table:
    table = Table(title="Suppliers")
    table.add_column("Tax id", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    for supplier in suppliers:
        table.add_row(_cell(supplier.tax_id), _cell(supplier.name))
    return table


def build_products_table(products: Iterable[CatalogProduct]) -> Table:
    table = Table(title="Products")
    table.add_column("SKU", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Unit")
    table.add_column("Supplier", style="dim")
    for product in products:
        table.add_row(
            _cell(product.sku),
            _cell(product.name),
            _cell(product.unit_of_measure),
            _cell(product.supplier_name),
        )
    return table


def build_stock_table(entries: Iterable[StockSnapshotEntry]) -> Table:
    table = Table(title="Stock")
    table.add_column("SKU", style="cyan", no_wrap=True)
    table.add_column("Product", style="white")
    table.add_column("Area", style="magenta")
    table.add_column("Available", justify="right", style="green")
    for entry in entries:
        unit = entry.unit_of_measure or ""
        table.add_row(
            _cell(entry.sku),
            _cell(entry.product_name),
            _cell(entry.area_name, str(entry.area_id) if entry.area_id is not None else "-"),
            escape(f"{format_quantity(entry.available_quantity)} {unit}".strip()),
        )
    return table


def build_areas_table(areas: Iterable[Area]) -> Table:
    table = Table(title="Areas")
    table.add_column("Id", justify="right", style="dim")
    table.add_column("Name", style="white")
    for area in areas:
        table.add_row(str(area.id), _cell(area.name))
    return table

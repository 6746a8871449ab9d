"""CLI principal (Typer).

Por qué Typer + Rich:
- Typer da subcomandos tipados y ayuda automática.
- Rich presenta borradores, totales e historial en tablas legibles.

La CLI no tiene lógica de negocio: carga borradores, alimenta los builders y
el agregador del Core y muestra lo que ellos devuelven. Cada error del Core se
imprime tal cual y termina con código 1.
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Awaitable, TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from adapters.api_client import StockApiClient
from adapters.draft_loader import GuideDraftFile, IngressDraftFile, load_guide_draft, load_ingress_draft
from adapters.json_exporter import export_documents_json
from cli import doctor, ui_components
from core.config import AppSettings
from core.domain.errors import StockDocsError, ValidationError
from core.domain.models import StockSnapshotEntry, canonical_code
from core.logging_setup import configure_logging
from core.services.consumption_builder import ConsumptionGuideBuilder
from core.services.document_aggregator import DocumentAggregator, filter_documents
from core.services.ingress_builder import LineItemStagingBuilder
from core.services.outgoing_history import OutgoingHistory
from core.services.suggestion_index import (
    ProductScope,
    StockScope,
    SuggestionIndex,
    SupplierScope,
    unique_suppliers,
)

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, help="Stock documents: supplier ingress, consumption guides and history.")
ingress_app = typer.Typer(no_args_is_help=True, help="Supplier ingress documents.")
guide_app = typer.Typer(no_args_is_help=True, help="Consumption guides (outgoing stock).")
search_app = typer.Typer(no_args_is_help=True, help="Catalog and stock suggestions.")
history_app = typer.Typer(no_args_is_help=True, help="Ingress and consumption history.")

app.add_typer(ingress_app, name="ingress")
app.add_typer(guide_app, name="guide")
app.add_typer(search_app, name="search")
app.add_typer(history_app, name="history")
app.add_typer(doctor.app, name="doctor")

_console = Console()

_DATE_FORMATS = ["%Y-%m-%d"]


def open_api(settings: AppSettings) -> Any:
    """Cliente remoto usado por todos los comandos (`async with`)."""

    return StockApiClient.from_settings(settings)


class TyperConfirmer:
    """`Confirmer` sobre un prompt de terminal."""

    def __init__(self, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes

    async def confirm(self, intent: str) -> bool:
        if self.assume_yes:
            return True
        return typer.confirm(f"{intent}. Continue?", default=False)


def _settings(ctx: typer.Context) -> AppSettings:
    if isinstance(ctx.obj, AppSettings):
        return ctx.obj
    return AppSettings()


def _run(awaitable: Awaitable[T]) -> T:
    try:
        return asyncio.run(awaitable)
    except StockDocsError as exc:
        _console.print(f"[red]Error:[/red] {escape(str(exc))}", soft_wrap=True)
        raise typer.Exit(code=1) from exc


def _day(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
) -> None:
    settings = AppSettings()
    configure_logging(settings, level=log_level)
    ctx.obj = settings


# ---------------------------------------------------------------------------
# Ingress
# ---------------------------------------------------------------------------


async def _submit_ingress(
    settings: AppSettings,
    draft: IngressDraftFile,
    *,
    responsible: str,
    dry_run: bool,
    confirmer: TyperConfirmer,
) -> None:
    async with open_api(settings) as api:
        builder = LineItemStagingBuilder(api, await api.list_areas())
        index = SuggestionIndex(api, debounce_seconds=0, min_chars=1)

        builder.update_header(**dict(draft.header))
        tax_id = canonical_code(draft.header.supplier_tax_id)
        supplier = next((s for s in unique_suppliers(await index.products()) if s.tax_id == tax_id), None)
        if supplier is not None:
            builder.select_supplier(supplier)

        catalog = await index.products()
        for position, line in enumerate(draft.lines, 1):
            builder.form = line.to_form()
            product = await index.find_product(builder.header.supplier_tax_id, line.sku)
            if product is not None:
                builder.select_product(product)
            else:
                builder.mark_new_product(catalog)
            try:
                builder.add_line()
            except StockDocsError:
                _console.print(f"[yellow]Line {position} ({escape(line.sku or '?')}) rejected[/yellow]")
                raise

        _console.print(ui_components.build_lines_table(builder.lines))
        _console.print(ui_components.build_totals_panel(builder.compute_totals()))

        if dry_run:
            builder.build_submission(builder.header, responsible=responsible)
            _console.print("[dim]Dry run: nothing was sent.[/dim]")
            return
        intent = f"Submit document {builder.header.document_number} with {len(builder.lines)} lines"
        if not await confirmer.confirm(intent):
            _console.print("[yellow]Submission cancelled.[/yellow]")
            return

        document_number = builder.header.document_number
        await builder.finalize(responsible=responsible)
        _console.print(f"[green]Ingress {escape(document_number)} submitted.[/green]")


@ingress_app.command("submit")
def ingress_submit(
    ctx: typer.Context,
    draft_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Ingress draft (JSON)."),
    responsible: str | None = typer.Option(None, "--responsible", "-r", help="User responsible for the document."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate and show totals without sending."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Stage a supplier invoice from a draft file and submit it."""

    settings = _settings(ctx)
    draft = _load(load_ingress_draft, draft_file)
    _run(
        _submit_ingress(
            settings,
            draft,
            responsible=responsible or settings.default_responsible,
            dry_run=dry_run,
            confirmer=TyperConfirmer(yes),
        )
    )


# ---------------------------------------------------------------------------
# Consumption guides
# ---------------------------------------------------------------------------


async def _resolve_stock(index: SuggestionIndex, sku: str, area_id: int | None) -> StockSnapshotEntry:
    """Exact sku lookup in the live stock of `area_id` (all areas when None)."""

    result = await index.search(StockScope(area_id), sku)
    wanted = canonical_code(sku)
    matches = [entry for entry in (result or ()) if canonical_code(entry.sku) == wanted]
    if area_id is not None:
        matches = [
            entry if entry.area_id is not None else entry.model_copy(update={"area_id": area_id})
            for entry in matches
            if entry.area_id in (None, area_id)
        ]
    if not matches:
        raise ValidationError(f"SKU {sku!r} has no stock in the selected origin")
    if len(matches) > 1:
        raise ValidationError(f"SKU {sku!r} is stocked in several areas; set originAreaId on the line")
    return matches[0]


async def _submit_guide(
    settings: AppSettings,
    draft: GuideDraftFile,
    *,
    responsible: str,
    dry_run: bool,
    confirmer: TyperConfirmer,
) -> None:
    async with open_api(settings) as api:
        mode = draft.origin_mode
        builder = ConsumptionGuideBuilder(api, await api.list_areas(), origin_mode=mode)
        builder.update_header(date=draft.date, reason_code=draft.reason_code)
        index = SuggestionIndex(api, debounce_seconds=0, min_chars=1)

        for position, line in enumerate(draft.lines, 1):
            origin = mode.area_id if not mode.is_general else line.origin_area_id
            try:
                builder.select_product(await _resolve_stock(index, line.sku, origin))
                builder.set_quantity(line.quantity)
                if mode.is_general or line.destination_area_id is not None:
                    builder.set_destination(line.destination_area_id)
                builder.add_line()
            except StockDocsError:
                _console.print(f"[yellow]Line {position} ({escape(line.sku)}) rejected[/yellow]")
                raise

        _console.print(ui_components.build_guide_lines_table(builder.lines))

        if dry_run:
            builder.build_submission(builder.header, responsible=responsible)
            _console.print("[dim]Dry run: nothing was sent.[/dim]")
            return
        if not await confirmer.confirm(f"Submit guide with {len(builder.lines)} lines"):
            _console.print("[yellow]Submission cancelled.[/yellow]")
            return

        created = await builder.finalize(responsible=responsible)
        folio = created.get("folio") if isinstance(created, dict) else None
        suffix = f" (folio {folio})" if folio is not None else ""
        _console.print(f"[green]Consumption guide submitted{suffix}.[/green]")


@guide_app.command("submit")
def guide_submit(
    ctx: typer.Context,
    draft_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Guide draft (JSON)."),
    responsible: str | None = typer.Option(None, "--responsible", "-r", help="User responsible for the guide."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate against live stock without sending."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Stage a consumption guide from a draft file and submit it."""

    settings = _settings(ctx)
    draft = _load(load_guide_draft, draft_file)
    _run(
        _submit_guide(
            settings,
            draft,
            responsible=responsible or settings.default_responsible,
            dry_run=dry_run,
            confirmer=TyperConfirmer(yes),
        )
    )


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


async def _search(settings: AppSettings, scope: Any, query: str, limit: int) -> None:
    if len(query.strip()) < settings.search_min_chars:
        _console.print(f"[yellow]Type at least {settings.search_min_chars} characters.[/yellow]")
        return
    async with open_api(settings) as api:
        index = SuggestionIndex(api, debounce_seconds=0, min_chars=settings.search_min_chars)
        result = await index.search(scope, query)

    items = result.to_list()[:limit] if result is not None else []
    if not items:
        _console.print("[dim]No matches.[/dim]")
        return
    if isinstance(scope, SupplierScope):
        _console.print(ui_components.build_suppliers_table(items))
    elif isinstance(scope, ProductScope):
        _console.print(ui_components.build_products_table(items))
    else:
        _console.print(ui_components.build_stock_table(items))


@search_app.command("suppliers")
def search_suppliers(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Name or tax id fragment."),
    limit: int = typer.Option(20, "--limit", min=1),
) -> None:
    """Suppliers known from the product catalog."""

    _run(_search(_settings(ctx), SupplierScope(), query, limit))


@search_app.command("products")
def search_products(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="SKU or name fragment."),
    supplier: str | None = typer.Option(None, "--supplier", help="Restrict to one supplier tax id."),
    limit: int = typer.Option(20, "--limit", min=1),
) -> None:
    """Catalog products, optionally of one supplier."""

    _run(_search(_settings(ctx), ProductScope(supplier), query, limit))


@search_app.command("stock")
def search_stock(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="SKU or name fragment."),
    area: int | None = typer.Option(None, "--area", help="Area id (all areas when omitted)."),
    limit: int = typer.Option(20, "--limit", min=1),
) -> None:
    """Live stock available for consumption guides."""

    _run(_search(_settings(ctx), StockScope(area), query, limit))


@search_app.command("areas")
def search_areas(ctx: typer.Context) -> None:
    """Areas (warehouses) configured on the server."""

    async def _areas() -> None:
        async with open_api(_settings(ctx)) as api:
            _console.print(ui_components.build_areas_table(await api.list_areas()))

    _run(_areas())


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def _ingress_history(
    settings: AppSettings,
    text: str,
    start: date | None,
    end: date | None,
    json_path: Path | None,
) -> None:
    async with open_api(settings) as api:
        documents = await DocumentAggregator(api).load()

    documents = filter_documents(documents, text, start, end)
    if json_path is not None:
        path = export_documents_json(documents=documents, output_path=json_path)
        _console.print(f"[green]Exported {len(documents)} documents to:[/green] {path}")
        return
    _console.print(ui_components.build_documents_table(documents))


@history_app.command("ingress")
def history_ingress(
    ctx: typer.Context,
    text: str = typer.Option("", "--text", "-t", help="Supplier, document number or responsible."),
    start: datetime | None = typer.Option(None, "--from", formats=_DATE_FORMATS, help="First day (inclusive)."),
    end: datetime | None = typer.Option(None, "--to", formats=_DATE_FORMATS, help="Last day (inclusive)."),
    json_path: Path | None = typer.Option(None, "--json", help="Write the documents to this JSON file."),
) -> None:
    """Ingress history regrouped into documents."""

    _run(_ingress_history(_settings(ctx), text, _day(start), _day(end), json_path))


async def _show_document(settings: AppSettings, document_number: str, supplier: str | None) -> None:
    async with open_api(settings) as api:
        aggregator = DocumentAggregator(api)
        await aggregator.load()

    try:
        document = aggregator.find_document(document_number, canonical_code(supplier) if supplier else None)
    except KeyError:
        raise ValidationError(f"Document {document_number!r} not found") from None
    _console.print(ui_components.build_rows_table(document))
    _console.print(ui_components.build_totals_panel(ui_components.document_totals(document)))


@history_app.command("show")
def history_show(
    ctx: typer.Context,
    document_number: str = typer.Argument(..., help="Document (invoice) number."),
    supplier: str | None = typer.Option(None, "--supplier", help="Supplier tax id, when numbers collide."),
) -> None:
    """Rows and totals of one ingress document."""

    _run(_show_document(_settings(ctx), document_number, supplier))


async def _edit_row(
    settings: AppSettings,
    row_id: int,
    quantity: float | None,
    unit_cost: float | None,
    confirmer: TyperConfirmer,
) -> None:
    async with open_api(settings) as api:
        aggregator = DocumentAggregator(api)
        await aggregator.load()
        try:
            aggregator.set_pending(row_id, quantity=quantity, unit_cost=unit_cost)
        except KeyError:
            raise ValidationError(f"Row {row_id} not found") from None

        document = next(doc for doc in aggregator.documents_view() if any(r.id == row_id for r in doc.children))
        _console.print(ui_components.build_rows_table(document, aggregator.pending))
        _console.print(ui_components.build_totals_panel(ui_components.document_totals(document), title="With edit"))

        updated = await aggregator.commit_edit(row_id, confirm=confirmer)
        if updated is None:
            aggregator.cancel_edit(row_id)
            _console.print("[yellow]Edit discarded.[/yellow]")
            return
        _console.print(f"[green]Row {row_id} updated.[/green]")
        if aggregator.stale:
            _console.print("[yellow]History could not be reloaded; run `history ingress` again.[/yellow]")


@history_app.command("edit")
def history_edit(
    ctx: typer.Context,
    row_id: int = typer.Argument(..., help="Row id as shown by `history show`."),
    quantity: float | None = typer.Option(None, "--quantity", "-q"),
    unit_cost: float | None = typer.Option(None, "--unit-cost", "-c"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Correct quantity and/or unit cost of one persisted row."""

    if quantity is None and unit_cost is None:
        raise typer.BadParameter("give --quantity and/or --unit-cost")
    _run(_edit_row(_settings(ctx), row_id, quantity, unit_cost, TyperConfirmer(yes)))


async def _outgoing(settings: AppSettings, text: str, start: date | None, end: date | None) -> None:
    async with open_api(settings) as api:
        history = OutgoingHistory(api)
        await history.load()
    _console.print(ui_components.build_outgoing_table(history.filter(text, start, end)))


@history_app.command("outgoing")
def history_outgoing(
    ctx: typer.Context,
    text: str = typer.Option("", "--text", "-t", help="Folio, responsible or destination."),
    start: datetime | None = typer.Option(None, "--from", formats=_DATE_FORMATS),
    end: datetime | None = typer.Option(None, "--to", formats=_DATE_FORMATS),
) -> None:
    """Consumption guide summaries."""

    _run(_outgoing(_settings(ctx), text, _day(start), _day(end)))


async def _folio(settings: AppSettings, folio: str) -> None:
    async with open_api(settings) as api:
        guide = await OutgoingHistory(api).detail(folio)
    table, summary = ui_components.build_guide_detail(guide)
    _console.print(table)
    _console.print(summary)


@history_app.command("folio")
def history_folio(ctx: typer.Context, folio: str = typer.Argument(..., help="Guide folio.")) -> None:
    """Detail of one consumption guide."""

    _run(_folio(_settings(ctx), folio))


def _load(loader: Any, path: Path) -> Any:
    try:
        return loader(path)
    except StockDocsError as exc:
        _console.print(f"[red]Error:[/red] {escape(str(exc))}", soft_wrap=True)
        raise typer.Exit(code=1) from exc


def run() -> None:
    # Terminales Windows (cp1252) no pueden imprimir los bordes de Rich
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")
    app()


if __name__ == "__main__":
    run()

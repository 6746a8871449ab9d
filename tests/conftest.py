"""Shared fixtures: an in-memory inventory server behind the remote protocols."""

from __future__ import annotations

from datetime import date
from typing import Any

import pytest

from core.domain.errors import RemoteError
from core.domain.models import (
    Area,
    CatalogProduct,
    ConsumptionSubmission,
    IngressSubmission,
    OutgoingDetailLine,
    OutgoingSummary,
    PendingLineEdit,
    PersistedMovementRow,
    StockSnapshotEntry,
)
from core.domain import money


def make_row(
    row_id: int,
    document_number: str,
    *,
    supplier_tax_id: str | None = "76.111.222-3",
    supplier_name: str = "ACME",
    day: date = date(2025, 3, 1),
    quantity: float = 1,
    unit_cost: float = 1000,
    sku: str = "SKU",
    responsible: str = "ana",
) -> PersistedMovementRow:
    amounts = money.line_amounts(quantity, unit_cost)
    return PersistedMovementRow(
        id=row_id,
        date=day,
        document_number=document_number,
        supplier_tax_id=supplier_tax_id,
        supplier_name=supplier_name,
        product_name=f"Product {sku}",
        product_sku=sku,
        area_name="Bodega",
        quantity=quantity,
        unit_cost=unit_cost,
        net_amount=amounts.net,
        gross_amount=amounts.gross,
        responsible=responsible,
    )


class FakeInventory:
    """Implements every gateway protocol in memory and records what it receives."""

    def __init__(self) -> None:
        self.areas = [Area(id=1, name="Bodega"), Area(id=2, name="Cocina"), Area(id=3, name="Bar")]
        self.products = [
            CatalogProduct(
                sku="ARR-01",
                name="Arroz",
                category="Abarrotes",
                unit_of_measure="KG",
                supplier_tax_id="76.111.222-3",
                supplier_name="Acme",
            ),
            CatalogProduct(
                sku="ACE-02",
                name="Aceite",
                unit_of_measure="LT",
                supplier_tax_id="76.111.222-3",
                supplier_name="Acme",
            ),
            CatalogProduct(
                sku="SAL-03",
                name="Sal",
                supplier_tax_id="99.888.777-k",
                supplier_name="Salinas Ltda",
            ),
        ]
        self.stock = [
            StockSnapshotEntry(sku="ARR-01", product_name="Arroz", area_id=1, area_name="Bodega", available_quantity=10),
            StockSnapshotEntry(sku="ARR-01", product_name="Arroz", area_id=2, area_name="Cocina", available_quantity=3),
            StockSnapshotEntry(sku="ACE-02", product_name="Aceite", area_id=1, area_name="Bodega", available_quantity=5),
        ]
        self.rows: list[PersistedMovementRow] = []
        self.summaries: list[OutgoingSummary] = []
        self.details: dict[str, list[OutgoingDetailLine]] = {}

        self.ingress_submissions: list[IngressSubmission] = []
        self.guide_submissions: list[ConsumptionSubmission] = []
        self.updates: list[tuple[int, PendingLineEdit]] = []
        self.calls: list[str] = []
        self.fail_with: RemoteError | None = None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def __aenter__(self) -> "FakeInventory":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    # CatalogGateway

    async def list_areas(self) -> list[Area]:
        self.calls.append("list_areas")
        return list(self.areas)

    async def list_products(self) -> list[CatalogProduct]:
        self.calls.append("list_products")
        return list(self.products)

    async def search_stock_for_guide(self, area_id: int | None, query: str) -> list[StockSnapshotEntry]:
        self.calls.append(f"search_stock:{area_id}:{query}")
        text = query.lower()
        return [
            entry
            for entry in self.stock
            if (area_id is None or entry.area_id == area_id)
            and (text in entry.sku.lower() or text in entry.product_name.lower())
        ]

    # IngressGateway

    async def submit_ingress_document(self, submission: IngressSubmission) -> Any:
        self.calls.append("submit_ingress")
        self._maybe_fail()
        self.ingress_submissions.append(submission)
        return {"id": len(self.ingress_submissions)}

    async def fetch_ingress_history_flat(self) -> list[PersistedMovementRow]:
        self.calls.append("fetch_history")
        return list(self.rows)

    async def update_ingress_line(self, row_id: int, edit: PendingLineEdit) -> PersistedMovementRow:
        self.calls.append(f"update:{row_id}")
        self._maybe_fail()
        self.updates.append((row_id, edit))
        for position, row in enumerate(self.rows):
            if row.id == row_id:
                amounts = money.line_amounts(edit.quantity, edit.unit_cost)
                updated = row.model_copy(
                    update={
                        "quantity": edit.quantity,
                        "unit_cost": edit.unit_cost,
                        "net_amount": amounts.net,
                        "gross_amount": amounts.gross,
                    }
                )
                self.rows[position] = updated
                return updated
        raise RemoteError("Row not found", status_code=404)

    # OutgoingGateway

    async def submit_consumption_guide(self, submission: ConsumptionSubmission) -> Any:
        self.calls.append("submit_guide")
        self._maybe_fail()
        self.guide_submissions.append(submission)
        return {"folio": 100 + len(self.guide_submissions)}

    async def fetch_outgoing_summaries(self) -> list[OutgoingSummary]:
        self.calls.append("fetch_summaries")
        return list(self.summaries)

    async def fetch_outgoing_detail(self, folio: str) -> list[OutgoingDetailLine]:
        self.calls.append(f"fetch_detail:{folio}")
        return list(self.details.get(folio, []))


class RecordingConfirmer:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.intents: list[str] = []

    async def confirm(self, intent: str) -> bool:
        self.intents.append(intent)
        return self.answer


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()

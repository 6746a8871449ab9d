"""Contratos de los colaboradores remotos.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- Los builders y el agregador dependen de estas abstracciones; el adaptador
  HTTP (`adapters.api_client`) o un fake en memoria las implementan.

Reglas de diseño:
- Todas las operaciones remotas son asíncronas: suspenden solo al llamador.
- Los fallos de red/servidor se informan como `core.domain.errors.RemoteError`.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

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


@runtime_checkable
class CatalogGateway(Protocol):
    """Lecturas del catálogo y del stock."""

    async def list_areas(self) -> Sequence[Area]:
        ...

    async def list_products(self) -> Sequence[CatalogProduct]:
        ...

    async def search_stock_for_guide(
        self, area_id: int | None, query: str
    ) -> Sequence[StockSnapshotEntry]:
        """`area_id=None` busca en todas las áreas."""

        ...


@runtime_checkable
class IngressGateway(Protocol):
    async def submit_ingress_document(self, submission: IngressSubmission) -> Any:
        ...

    async def fetch_ingress_history_flat(self) -> Sequence[PersistedMovementRow]:
        ...

    async def update_ingress_line(self, row_id: int, edit: PendingLineEdit) -> PersistedMovementRow:
        ...


@runtime_checkable
class OutgoingGateway(Protocol):
    async def submit_consumption_guide(self, submission: ConsumptionSubmission) -> Any:
        ...

    async def fetch_outgoing_summaries(self) -> Sequence[OutgoingSummary]:
        ...

    async def fetch_outgoing_detail(self, folio: str) -> Sequence[OutgoingDetailLine]:
        ...


@runtime_checkable
class Confirmer(Protocol):
    """Capacidad de confirmación (diálogo, prompt) que el Core invoca.

    El Core nunca bloquea esperando al usuario por su cuenta.
    """

    async def confirm(self, intent: str) -> bool:
        ...

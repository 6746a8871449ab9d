"""Regrouping of persisted ingress rows into logical documents.

The history endpoint returns one flat row per received product. This module
folds those rows back into documents keyed by (document number, supplier
tax id), and lets an operator correct one row at a time:

- pending edits live beside the committed rows and are applied on every
  view, so a document's totals always equal the sum of what is shown;
- committing an edit goes through the remote collaborator and then reloads
  and regroups everything instead of patching the cached documents.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from core.domain import money
from core.domain.errors import RemoteError, ValidationError
from core.domain.models import LogicalDocument, PendingLineEdit, PersistedMovementRow
from core.interfaces.remote import Confirmer, IngressGateway
from core.services.filters import matches_text, within_range

logger = logging.getLogger(__name__)


def _fold(key: tuple[str, str], children: Sequence[PersistedMovementRow]) -> LogicalDocument:
    first = children[0]
    totals = money.fold_totals((row.net_amount, row.gross_amount) for row in children)
    return LogicalDocument(
        key=key,
        date=first.date,
        document_number=first.document_number,
        supplier_tax_id=first.supplier_tax_id,
        supplier_name=first.supplier_name,
        responsible=first.responsible,
        children=tuple(children),
        total_net=totals.total_net,
        total_gross=totals.total_gross,
    )


def group_movements(rows: Iterable[PersistedMovementRow]) -> list[LogicalDocument]:
    """Groups rows by (document number, supplier tax id), newest first.

    Documents sharing a date keep the order in which their first row appeared.
    """

    groups: dict[tuple[str, str], list[PersistedMovementRow]] = {}
    for row in rows:
        groups.setdefault(row.group_key, []).append(row)

    documents = [_fold(key, children) for key, children in groups.items()]
    # list.sort is stable, also with reverse=True
    documents.sort(key=lambda document: document.date, reverse=True)
    return documents


def recompute_row(row: PersistedMovementRow, pending: PendingLineEdit) -> PersistedMovementRow:
    amounts = money.line_amounts(pending.quantity, pending.unit_cost)
    return row.model_copy(
        update={
            "quantity": pending.quantity,
            "unit_cost": pending.unit_cost,
            "net_amount": amounts.net,
            "gross_amount": amounts.gross,
        }
    )


def recompute_with_pending_edit(
    document: LogicalDocument, edited_row_id: int, pending: PendingLineEdit
) -> LogicalDocument:
    """A new view of `document` with one row recomputed from pending values."""

    if not any(row.id == edited_row_id for row in document.children):
        raise KeyError(edited_row_id)
    children = [
        recompute_row(row, pending) if row.id == edited_row_id else row for row in document.children
    ]
    return _fold(document.key, children)


def filter_documents(
    documents: Iterable[LogicalDocument],
    text: str = "",
    start: date | None = None,
    end: date | None = None,
) -> list[LogicalDocument]:
    """Free text over supplier / document number / responsible, inclusive dates."""

    return [
        document
        for document in documents
        if matches_text(text, (document.supplier_name, document.document_number, document.responsible))
        and within_range(document.date, start, end)
    ]


class DocumentAggregator:
    def __init__(self, gateway: IngressGateway) -> None:
        self._gateway = gateway
        self._rows: tuple[PersistedMovementRow, ...] = ()
        self._documents: list[LogicalDocument] = []
        self._pending: dict[int, PendingLineEdit] = {}
        self.last_error: RemoteError | None = None
        # True when the server holds changes the cached rows do not show yet
        self.stale = False

    @property
    def rows(self) -> tuple[PersistedMovementRow, ...]:
        return self._rows

    @property
    def committed_documents(self) -> list[LogicalDocument]:
        return list(self._documents)

    @property
    def pending(self) -> Mapping[int, PendingLineEdit]:
        return MappingProxyType(self._pending)

    def group(self, rows: Iterable[PersistedMovementRow]) -> list[LogicalDocument]:
        return group_movements(rows)

    def recompute_with_pending_edit(
        self, document: LogicalDocument, edited_row_id: int, pending: PendingLineEdit
    ) -> LogicalDocument:
        return recompute_with_pending_edit(document, edited_row_id, pending)

    async def load(self) -> list[LogicalDocument]:
        """Fetches the flat history and regroups it from scratch."""

        try:
            rows = tuple(await self._gateway.fetch_ingress_history_flat())
        except RemoteError as exc:
            self.last_error = exc
            logger.warning("could not load ingress history: %s", exc.message)
            raise
        self._rows = rows
        self._documents = group_movements(rows)
        self.stale = False
        known = {row.id for row in rows}
        for row_id in [row_id for row_id in self._pending if row_id not in known]:
            del self._pending[row_id]
        logger.debug("history loaded: %d rows, %d documents", len(rows), len(self._documents))
        return self.documents_view()

    def find_row(self, row_id: int) -> PersistedMovementRow:
        for row in self._rows:
            if row.id == row_id:
                return row
        raise KeyError(row_id)

    def find_document(self, document_number: str, supplier_tax_id: str | None = None) -> LogicalDocument:
        """The current view (pending edits applied) of one document."""

        for document in self._documents:
            if document.document_number != document_number:
                continue
            if supplier_tax_id is not None and (document.supplier_tax_id or "") != supplier_tax_id:
                continue
            return self.view(document)
        raise KeyError((document_number, supplier_tax_id))

    def begin_edit(self, row_id: int) -> PendingLineEdit:
        row = self.find_row(row_id)
        pending = PendingLineEdit(row_id=row_id, quantity=row.quantity, unit_cost=row.unit_cost)
        self._pending[row_id] = pending
        return pending

    def set_pending(
        self,
        row_id: int,
        *,
        quantity: float | None = None,
        unit_cost: float | None = None,
    ) -> PendingLineEdit:
        current = self._pending.get(row_id)
        if current is None:
            row = self.find_row(row_id)
            current = PendingLineEdit(row_id=row_id, quantity=row.quantity, unit_cost=row.unit_cost)
        pending = current.model_copy(
            update={
                "quantity": current.quantity if quantity is None else quantity,
                "unit_cost": current.unit_cost if unit_cost is None else unit_cost,
            }
        )
        _check_pending(pending)
        self._pending[row_id] = pending
        return pending

    def cancel_edit(self, row_id: int) -> None:
        self._pending.pop(row_id, None)

    def view(self, document: LogicalDocument) -> LogicalDocument:
        """`document` with every pending edit of its rows applied."""

        for row in document.children:
            pending = self._pending.get(row.id)
            if pending is not None:
                document = recompute_with_pending_edit(document, row.id, pending)
        return document

    def documents_view(self) -> list[LogicalDocument]:
        return [self.view(document) for document in self._documents]

    async def commit_edit(
        self,
        row_id: int,
        pending: PendingLineEdit | None = None,
        *,
        confirm: Confirmer | None = None,
    ) -> PersistedMovementRow | None:
        """Persists one row's pending edit, then reloads the whole history.

        Returns `None` when the confirmer declines; nothing is sent then.
        On a remote failure the pending edit is kept and the error propagates.
        If the update is stored but the reload fails, the updated row is still
        returned; `stale` and `last_error` then report the outdated cache.
        """

        self.find_row(row_id)
        pending = pending or self._pending.get(row_id)
        if pending is None:
            raise ValidationError(f"Row {row_id} has no pending edit")
        if pending.row_id != row_id:
            raise ValidationError(f"Pending edit belongs to row {pending.row_id}, not {row_id}")
        _check_pending(pending)
        self._pending[row_id] = pending

        if confirm is not None:
            intent = f"Update line {row_id}: quantity {pending.quantity:g}, unit cost {pending.unit_cost:g}"
            if not await confirm.confirm(intent):
                logger.debug("edit of row %d not confirmed", row_id)
                return None

        try:
            updated = await self._gateway.update_ingress_line(row_id, pending)
        except RemoteError as exc:
            self.last_error = exc
            logger.warning("update of row %d failed: %s", row_id, exc.message)
            raise

        self.last_error = None
        self._pending.pop(row_id, None)
        logger.info("row %d updated", row_id)
        try:
            await self.load()
        except RemoteError:
            self.stale = True
            logger.warning("row %d was stored but the history could not be reloaded", row_id)
        return updated


def _check_pending(pending: PendingLineEdit) -> None:
    if not (math.isfinite(pending.quantity) and math.isfinite(pending.unit_cost)):
        raise ValidationError("Quantity and unit cost must be finite numbers")
    if pending.quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if pending.unit_cost < 0:
        raise ValidationError("Unit cost cannot be negative")

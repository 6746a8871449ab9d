"""Staging of consumption guides (outgoing stock movements).

A guide runs in one of two origin modes:

- FIXED(area): every line is taken from that area and consumed there; lines
  carry no destination.
- GENERAL: each line keeps the area its stock row came from and must name a
  destination area.

Switching modes invalidates the stock checks made so far, so it discards the
staged lines. Stock sufficiency is checked against the snapshot captured at
selection time only; the server remains the authority at submission.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from core.domain.errors import (
    EmptyGuideError,
    InsufficientStockError,
    MissingDestinationError,
    MissingFieldsError,
    RemoteError,
    SubmissionInProgressError,
    ValidationError,
)
from core.domain.models import (
    CONSUMED_AT_ORIGIN,
    Area,
    ConsumptionDetailPayload,
    ConsumptionForm,
    ConsumptionHeader,
    ConsumptionSubmission,
    DraftConsumptionLine,
    OriginMode,
    StockSnapshotEntry,
)
from core.interfaces.remote import OutgoingGateway

logger = logging.getLogger(__name__)


class ConsumptionGuideBuilder:
    """Assembles one consumption guide against fetched stock snapshots."""

    def __init__(
        self,
        gateway: OutgoingGateway,
        areas: Iterable[Area] = (),
        *,
        origin_mode: OriginMode | None = None,
    ) -> None:
        self._gateway = gateway
        self._areas: dict[int, Area] = {area.id: area for area in areas}
        self._origin_mode = origin_mode or OriginMode.general()
        self.header = ConsumptionHeader()
        self.form = ConsumptionForm()
        self._lines: tuple[DraftConsumptionLine, ...] = ()
        self._submitting = False

    @property
    def origin_mode(self) -> OriginMode:
        return self._origin_mode

    @property
    def lines(self) -> tuple[DraftConsumptionLine, ...]:
        return self._lines

    @property
    def submitting(self) -> bool:
        return self._submitting

    def set_areas(self, areas: Iterable[Area]) -> None:
        self._areas = {area.id: area for area in areas}

    def set_origin_mode(self, mode: OriginMode) -> int:
        """Switches the supply source. Returns how many staged lines were discarded."""

        if mode == self._origin_mode:
            return 0
        discarded = len(self._lines)
        if discarded:
            logger.info("origin changed to %s, discarding %d staged lines", mode.kind.value, discarded)
        self._origin_mode = mode
        self._lines = ()
        self.form = ConsumptionForm()
        return discarded

    def update_header(self, **values: Any) -> ConsumptionHeader:
        self.header = self.header.model_copy(update=values)
        return self.header

    def select_product(self, entry: StockSnapshotEntry) -> ConsumptionForm:
        mode = self._origin_mode
        if not mode.is_general and entry.area_id is not None and entry.area_id != mode.area_id:
            raise ValidationError(
                f"{entry.product_name} is stocked in area {entry.area_id}, not in the guide's origin"
            )
        self.form = self.form.model_copy(update={"entry": entry})
        return self.form

    def set_quantity(self, quantity: float | None) -> ConsumptionForm:
        self.form = self.form.model_copy(update={"quantity": quantity})
        return self.form

    def set_destination(self, area_id: int | None) -> ConsumptionForm:
        if not self._origin_mode.is_general:
            raise ValidationError("Lines of a fixed-origin guide are consumed at origin")
        self.form = self.form.model_copy(update={"destination_area_id": area_id})
        return self.form

    def add_line(self, form: ConsumptionForm | None = None) -> DraftConsumptionLine:
        form = self.form if form is None else form
        entry = form.entry

        missing = []
        if entry is None or not entry.sku.strip():
            missing.append("sku")
        if form.quantity is None:
            missing.append("quantity")
        if missing:
            raise MissingFieldsError(missing)
        assert entry is not None and form.quantity is not None

        quantity = form.quantity
        if not math.isfinite(quantity):
            raise ValidationError("Quantity must be a finite number")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

        mode = self._origin_mode
        if mode.is_general and form.destination_area_id is None:
            raise MissingDestinationError(entry.sku)
        if not mode.is_general and form.destination_area_id is not None:
            raise ValidationError("Lines of a fixed-origin guide are consumed at origin")

        if quantity > entry.available_quantity:
            logger.debug("rejected %s: %g > %g", entry.sku, quantity, entry.available_quantity)
            raise InsufficientStockError(entry.sku, quantity, entry.available_quantity)

        if mode.is_general:
            if entry.area_id is None:
                raise MissingFieldsError(["origin_area_id"])
            origin_id = entry.area_id
            destination_label = self._area_name(form.destination_area_id)
        else:
            assert mode.area_id is not None
            origin_id = mode.area_id
            destination_label = CONSUMED_AT_ORIGIN

        origin_area = self._areas.get(origin_id)
        line = DraftConsumptionLine(
            sku=entry.sku.strip(),
            name=entry.product_name,
            quantity=quantity,
            unit=entry.unit_of_measure,
            origin_area_id=origin_id,
            origin_area_name=origin_area.name if origin_area else entry.area_name,
            destination_area_id=form.destination_area_id if mode.is_general else None,
            destination_label=destination_label,
            reason_code=self.header.reason_code,
            snapshot_available_quantity=entry.available_quantity,
        )
        self._lines = (*self._lines, line)
        self.form = ConsumptionForm()
        return line

    def remove_line(self, index: int) -> DraftConsumptionLine:
        if not 0 <= index < len(self._lines):
            raise IndexError(f"no staged line at index {index}")
        removed = self._lines[index]
        self._lines = self._lines[:index] + self._lines[index + 1 :]
        return removed

    def reset(self) -> None:
        self.header = ConsumptionHeader()
        self.form = ConsumptionForm()
        self._lines = ()

    def build_submission(self, header: ConsumptionHeader, *, responsible: str) -> ConsumptionSubmission:
        if not self._lines:
            raise EmptyGuideError("A consumption guide needs at least one line")
        if not (responsible or "").strip():
            raise MissingFieldsError(["responsible"])

        mode = self._origin_mode
        if mode.is_general:
            details = tuple(
                ConsumptionDetailPayload(
                    sku=line.sku,
                    quantity=line.quantity,
                    reason_code=line.reason_code,
                    origin_area_id=line.origin_area_id,
                    destination_area_id=line.destination_area_id,
                )
                for line in self._lines
            )
        else:
            assert mode.area_id is not None
            details = tuple(
                ConsumptionDetailPayload(
                    sku=line.sku,
                    quantity=line.quantity,
                    reason_code=line.reason_code,
                    origin_area_id=mode.area_id,
                    destination_area_id=None,
                )
                for line in self._lines
            )

        return ConsumptionSubmission(
            origin_area_id=None if mode.is_general else mode.area_id,
            date=header.date,
            responsible=responsible.strip(),
            details=details,
        )

    async def finalize(self, header: ConsumptionHeader | None = None, *, responsible: str) -> Any:
        if self._submitting:
            raise SubmissionInProgressError("This guide is already being submitted")
        header = self.header if header is None else header
        submission = self.build_submission(header, responsible=responsible)
        self.header = header

        self._submitting = True
        try:
            created = await self._gateway.submit_consumption_guide(submission)
        except RemoteError as exc:
            logger.warning("consumption guide rejected: %s", exc.message)
            raise
        finally:
            self._submitting = False

        logger.info(
            "consumption guide submitted (%s, %d lines)",
            self._origin_mode.kind.value,
            len(submission.details),
        )
        self.reset()
        return created

    def _area_name(self, area_id: int | None) -> str:
        area = self._areas.get(area_id) if area_id is not None else None
        if area is None:
            raise ValidationError(f"Unknown destination area {area_id}")
        return area.name

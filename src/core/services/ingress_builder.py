"""Staging of supplier ingress documents.

The builder owns the draft of one document: its header, the active input
form and an immutable, ordered tuple of line items. Lines are only ever
modified through `add_line` / `replace`, which share a single validation
path, so the unique-sku rule and the monetary derivation hold for every
line regardless of how it got there.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from core.domain import money
from core.domain.errors import (
    DuplicateSkuError,
    EmptyDocumentError,
    MissingFieldsError,
    RemoteError,
    SubmissionInProgressError,
    ValidationError,
)
from core.domain.models import (
    DEFAULT_AREA_NAME,
    DEFAULT_UNIT_OF_MEASURE,
    Area,
    CatalogProduct,
    DraftLineItem,
    IngressHeader,
    IngressItemPayload,
    IngressSubmission,
    LineForm,
    Supplier,
    canonical_code,
)
from core.interfaces.remote import IngressGateway

logger = logging.getLogger(__name__)


class LineItemStagingBuilder:
    """Assembles one ingress document (header + unique line items)."""

    def __init__(self, gateway: IngressGateway, areas: Iterable[Area] = ()) -> None:
        self._gateway = gateway
        self._areas: dict[int, Area] = {area.id: area for area in areas}
        self.header = IngressHeader()
        self.form = LineForm()
        self._lines: tuple[DraftLineItem, ...] = ()
        self._submitting = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def lines(self) -> tuple[DraftLineItem, ...]:
        return self._lines

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def editing_index(self) -> int | None:
        return self.form.editing_index

    def set_areas(self, areas: Iterable[Area]) -> None:
        self._areas = {area.id: area for area in areas}

    def update_header(self, **values: Any) -> IngressHeader:
        self.header = self.header.model_copy(update=values)
        return self.header

    def select_supplier(self, supplier: Supplier) -> IngressHeader:
        return self.update_header(
            supplier_tax_id=canonical_code(supplier.tax_id),
            supplier_name=supplier.name.strip().upper(),
        )

    def update_form(self, **values: Any) -> LineForm:
        self.form = self.form.model_copy(update=values)
        return self.form

    def select_product(self, product: CatalogProduct) -> LineForm:
        """Copies a catalog match into the form; the product is known, hence not new."""

        return self.update_form(
            sku=product.sku,
            name=product.name,
            category=product.category or "",
            unit_of_measure=product.unit_of_measure or DEFAULT_UNIT_OF_MEASURE,
            is_new_product=False,
        )

    def mark_new_product(self, catalog: Iterable[CatalogProduct]) -> bool:
        """Flags the form when its sku is not in the current supplier's catalog."""

        sku = canonical_code(self.form.sku)
        supplier = canonical_code(self.header.supplier_tax_id)
        known = any(
            product.canonical_sku == sku and canonical_code(product.supplier_tax_id) == supplier
            for product in catalog
        )
        is_new = bool(sku) and not known
        self.update_form(is_new_product=is_new)
        return is_new

    def form_amounts(self) -> money.LineAmounts:
        """Live net/gross of the active form; missing values count as zero."""

        return money.line_amounts(self.form.quantity, self.form.unit_price)

    def compute_totals(self) -> money.DocumentTotals:
        return money.fold_totals((line.computed_net, line.computed_gross) for line in self._lines)

    # ------------------------------------------------------------------
    # Line operations
    # ------------------------------------------------------------------

    def add_line(self, form: LineForm | None = None) -> DraftLineItem:
        """Validates `form` (the active form by default) and appends it.

        A form that carries an `editing_index` replaces that line instead.
        """

        form = self.form if form is None else form
        if form.editing_index is not None:
            return self.replace(form.editing_index, form)

        line = self._build_line(form)
        self._ensure_unique(line, skip=None)
        self._lines = (*self._lines, line)
        self.form = LineForm()
        logger.debug("staged %s x%g (net %d)", line.sku, line.quantity, line.computed_net)
        return line

    def replace(self, index: int, form: LineForm) -> DraftLineItem:
        self._check_index(index)
        line = self._build_line(form)
        self._ensure_unique(line, skip=index)
        lines = list(self._lines)
        lines[index] = line
        self._lines = tuple(lines)
        self.form = LineForm()
        logger.debug("replaced line %d with %s", index, line.sku)
        return line

    def edit_line(self, index: int) -> LineForm:
        """Loads a staged line into the form; `add_line` will then replace it."""

        self._check_index(index)
        line = self._lines[index]
        self.form = LineForm(
            sku=line.sku,
            name=line.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            area_id=line.area_id,
            category=line.category,
            unit_of_measure=line.unit_of_measure,
            is_new_product=line.is_new_product,
            editing_index=index,
        )
        return self.form

    def cancel_edit(self) -> None:
        self.form = LineForm()

    def remove_line(self, index: int) -> DraftLineItem:
        self._check_index(index)
        removed = self._lines[index]
        self._lines = self._lines[:index] + self._lines[index + 1 :]

        editing = self.form.editing_index
        if editing is not None:
            if editing == index:
                self.form = self.form.model_copy(update={"editing_index": None})
            elif editing > index:
                self.form = self.form.model_copy(update={"editing_index": editing - 1})
        return removed

    def reset(self) -> None:
        self.header = IngressHeader()
        self.form = LineForm()
        self._lines = ()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_submission(self, header: IngressHeader, *, responsible: str) -> IngressSubmission:
        missing = [
            name
            for name, value in (
                ("document_number", header.document_number),
                ("supplier_tax_id", header.supplier_tax_id),
                ("responsible", responsible),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise MissingFieldsError(missing)
        if not self._lines:
            raise EmptyDocumentError("An ingress document needs at least one line")

        return IngressSubmission(
            date=header.date,
            document_number=header.document_number.strip(),
            supplier_tax_id=canonical_code(header.supplier_tax_id),
            supplier_name=header.supplier_name.strip(),
            responsible=responsible.strip(),
            items=tuple(
                IngressItemPayload(
                    sku=line.sku,
                    name=line.name,
                    area_id=line.area_id,
                    quantity=line.quantity,
                    unit_cost=line.unit_price,
                    category=line.category,
                    unit_of_measure=line.unit_of_measure,
                )
                for line in self._lines
            ),
        )

    async def finalize(self, header: IngressHeader | None = None, *, responsible: str) -> Any:
        """Submits the staged document.

        On success the builder is reset and the created record is returned.
        On failure the draft is left untouched and the error propagates.
        """

        if self._submitting:
            raise SubmissionInProgressError("This ingress document is already being submitted")
        header = self.header if header is None else header
        submission = self.build_submission(header, responsible=responsible)
        self.header = header

        self._submitting = True
        try:
            created = await self._gateway.submit_ingress_document(submission)
        except RemoteError as exc:
            logger.warning("ingress %s rejected: %s", submission.document_number, exc.message)
            raise
        finally:
            self._submitting = False

        logger.info(
            "ingress %s submitted (%d lines, net %d)",
            submission.document_number,
            len(submission.items),
            self.compute_totals().total_net,
        )
        self.reset()
        return created

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._lines):
            raise IndexError(f"no staged line at index {index}")

    def _ensure_unique(self, line: DraftLineItem, *, skip: int | None) -> None:
        for position, existing in enumerate(self._lines):
            if position != skip and existing.canonical_sku == line.canonical_sku:
                logger.debug("rejected duplicate sku %s", line.sku)
                raise DuplicateSkuError(line.sku)

    def _build_line(self, form: LineForm) -> DraftLineItem:
        sku = (form.sku or "").strip()
        name = (form.name or "").strip()
        missing = [
            field
            for field, absent in (
                ("sku", not sku),
                ("name", not name),
                ("quantity", form.quantity is None),
                ("unit_price", form.unit_price is None),
                ("area_id", form.area_id is None),
            )
            if absent
        ]
        if missing:
            raise MissingFieldsError(missing)
        assert form.quantity is not None and form.unit_price is not None and form.area_id is not None

        if not (math.isfinite(form.quantity) and math.isfinite(form.unit_price)):
            raise ValidationError("Quantity and unit price must be finite numbers")
        if form.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        if form.unit_price < 0:
            raise ValidationError("Unit price cannot be negative")

        area = self._areas.get(form.area_id)
        amounts = money.line_amounts(form.quantity, form.unit_price)
        return DraftLineItem(
            sku=sku,
            name=name,
            quantity=form.quantity,
            unit_price=form.unit_price,
            area_id=form.area_id,
            area_name=area.name if area else DEFAULT_AREA_NAME,
            category=form.category,
            unit_of_measure=form.unit_of_measure or DEFAULT_UNIT_OF_MEASURE,
            is_new_product=form.is_new_product,
            computed_net=amounts.net,
            computed_gross=amounts.gross,
        )

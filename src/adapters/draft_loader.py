"""Lectura de borradores desde archivos JSON.

Permite preparar un ingreso o una guía fuera de línea (p.ej. exportado de una
planilla) y pasarlo por los mismos builders que usaría un formulario.

Formato de ingreso::

    {"header": {"date": "2025-03-01", "documentNumber": "F-1001",
                "supplierTaxId": "76.111.222-3", "supplierName": "ACME"},
     "lines": [{"sku": "ARR-01", "name": "Arroz", "quantity": 10,
                "unitPrice": 1000, "areaId": 1}]}

Formato de guía::

    {"date": "2025-03-02", "reasonCode": "CONSUMO", "originAreaId": 1,
     "lines": [{"sku": "ARR-01", "quantity": 2, "destinationAreaId": null}]}

`originAreaId` nulo u omitido significa modo general.
"""

from __future__ import annotations

import json
from datetime import date as Date
from pathlib import Path

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from core.domain.errors import ValidationError
from core.domain.models import (
    DEFAULT_UNIT_OF_MEASURE,
    IngressHeader,
    LineForm,
    OriginMode,
    ReasonCode,
    WireModel,
)


class IngressLineInput(WireModel):
    sku: str | None = None
    name: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    area_id: int | None = None
    category: str = ""
    unit_of_measure: str = DEFAULT_UNIT_OF_MEASURE

    def to_form(self) -> LineForm:
        return LineForm(**self.model_dump())


class IngressDraftFile(WireModel):
    header: IngressHeader = Field(default_factory=IngressHeader)
    lines: tuple[IngressLineInput, ...] = ()


class GuideLineInput(WireModel):
    sku: str
    quantity: float | None = None
    origin_area_id: int | None = None
    destination_area_id: int | None = None


class GuideDraftFile(WireModel):
    date: Date = Field(default_factory=Date.today)
    reason_code: ReasonCode = ReasonCode.CONSUMPTION
    origin_area_id: int | None = None
    lines: tuple[GuideLineInput, ...] = ()

    @property
    def origin_mode(self) -> OriginMode:
        if self.origin_area_id is None:
            return OriginMode.general()
        return OriginMode.fixed(self.origin_area_id)


def _read(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc}") from exc


def load_ingress_draft(path: Path) -> IngressDraftFile:
    try:
        return IngressDraftFile.model_validate(_read(path))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid ingress draft {path}: {exc}") from exc


def load_guide_draft(path: Path) -> GuideDraftFile:
    try:
        return GuideDraftFile.model_validate(_read(path))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid guide draft {path}: {exc}") from exc

"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta en el borde (respuestas del servidor) y modelos
  inmutables para los borradores: cada cambio produce un valor nuevo.
- Serialización por alias: los nombres de campo del contrato remoto
  (camelCase, y los nombres en español que la API realmente devuelve) quedan
  aislados aquí; el resto del Core usa snake_case.

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

from datetime import date as Date
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

from core.domain.money import round_currency

DEFAULT_UNIT_OF_MEASURE = "UNIDAD"
DEFAULT_AREA_NAME = "General"
CONSUMED_AT_ORIGIN = "Consumed at Origin"


def canonical_code(value: str | None) -> str:
    """Forma canónica de SKU / RUT: sin espacios laterales y en mayúsculas."""

    return (value or "").strip().upper()


def _wire(*names: str, default: Any = ...) -> Any:
    """Campo que acepta varios nombres de entrada y serializa con el primero."""

    return Field(
        default,
        validation_alias=AliasChoices(names[0], *names[1:]),
        serialization_alias=names[0],
    )


class WireModel(BaseModel):
    """Base de los modelos que cruzan el contrato remoto."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _date_only(value: Any) -> Any:
    # El backend a veces devuelve timestamps ISO completos
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


# ---------------------------------------------------------------------------
# Catálogo (solo lectura para el Core)
# ---------------------------------------------------------------------------


class CatalogProduct(WireModel):
    sku: str
    name: str
    category: str | None = None
    unit_of_measure: str | None = None
    supplier_tax_id: str | None = _wire("supplierTaxId", "supplierRut", default=None)
    supplier_name: str | None = None

    @property
    def canonical_sku(self) -> str:
        return canonical_code(self.sku)


class Supplier(WireModel):
    """Proveedor derivado del catálogo (único por RUT canónico)."""

    tax_id: str
    name: str


class Area(WireModel):
    id: int
    name: str = _wire("name", "nombre")


class StockSnapshotEntry(WireModel):
    """Lectura puntual de stock por área; se reemplaza re-consultando, nunca se edita."""

    sku: str
    product_name: str = _wire("productName", "nombreProducto")
    unit_of_measure: str | None = _wire("unitOfMeasure", "unidadMedida", default=None)
    area_id: int | None = None
    area_name: str | None = _wire("areaName", "areaNombre", default=None)
    available_quantity: float = _wire("availableQuantity", "cantidadTotal", default=0)

    @field_validator("available_quantity", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


# ---------------------------------------------------------------------------
# Ingreso (factura de proveedor)
# ---------------------------------------------------------------------------


class IngressHeader(WireModel):
    date: Date = Field(default_factory=Date.today)
    document_number: str = ""
    supplier_tax_id: str = ""
    supplier_name: str = ""


class LineForm(BaseModel):
    """Formulario activo del ingreso: todo es opcional hasta `add_line`."""

    model_config = ConfigDict(frozen=True)

    sku: str | None = None
    name: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    area_id: int | None = None
    category: str = ""
    unit_of_measure: str = DEFAULT_UNIT_OF_MEASURE
    is_new_product: bool = False
    editing_index: int | None = None


class DraftLineItem(WireModel):
    sku: str
    name: str
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    area_id: int
    area_name: str
    category: str = ""
    unit_of_measure: str = DEFAULT_UNIT_OF_MEASURE
    is_new_product: bool = False
    computed_net: int
    computed_gross: int

    @property
    def canonical_sku(self) -> str:
        return canonical_code(self.sku)


class IngressItemPayload(WireModel):
    sku: str
    name: str
    area_id: int
    quantity: float
    unit_cost: float
    category: str
    unit_of_measure: str


class IngressSubmission(WireModel):
    """Payload inmutable que se entrega al colaborador `submit`."""

    date: Date
    document_number: str
    supplier_tax_id: str
    supplier_name: str
    responsible: str
    items: tuple[IngressItemPayload, ...]


# ---------------------------------------------------------------------------
# Guía de consumo
# ---------------------------------------------------------------------------


class ReasonCode(str, Enum):
    """Motivo de salida."""

    CONSUMPTION = "CONSUMO"
    WASTE = "MERMA"


class OriginKind(str, Enum):
    FIXED = "FIXED"
    GENERAL = "GENERAL"


class OriginMode(BaseModel):
    """`FIXED(area_id)` (se consume en el origen) o `GENERAL` (destino por línea)."""

    model_config = ConfigDict(frozen=True)

    kind: OriginKind
    area_id: int | None = None

    @model_validator(mode="after")
    def _area_iff_fixed(self) -> "OriginMode":
        if self.kind is OriginKind.FIXED and self.area_id is None:
            raise ValueError("fixed origin requires an area id")
        if self.kind is OriginKind.GENERAL and self.area_id is not None:
            raise ValueError("general origin does not take an area id")
        return self

    @classmethod
    def fixed(cls, area_id: int) -> "OriginMode":
        return cls(kind=OriginKind.FIXED, area_id=area_id)

    @classmethod
    def general(cls) -> "OriginMode":
        return cls(kind=OriginKind.GENERAL)

    @property
    def is_general(self) -> bool:
        return self.kind is OriginKind.GENERAL


class ConsumptionHeader(WireModel):
    date: Date = Field(default_factory=Date.today)
    reason_code: ReasonCode = ReasonCode.CONSUMPTION


class ConsumptionForm(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry: StockSnapshotEntry | None = None
    quantity: float | None = None
    destination_area_id: int | None = None


class DraftConsumptionLine(WireModel):
    sku: str
    name: str
    quantity: float = Field(..., gt=0)
    unit: str | None = None
    origin_area_id: int
    origin_area_name: str | None = None
    destination_area_id: int | None = None
    destination_label: str = CONSUMED_AT_ORIGIN
    reason_code: ReasonCode = ReasonCode.CONSUMPTION
    snapshot_available_quantity: float


class ConsumptionDetailPayload(WireModel):
    sku: str
    quantity: float
    reason_code: ReasonCode
    origin_area_id: int
    destination_area_id: int | None = None


class ConsumptionSubmission(WireModel):
    origin_area_id: int | None
    date: Date
    responsible: str
    details: tuple[ConsumptionDetailPayload, ...]


# ---------------------------------------------------------------------------
# Historial
# ---------------------------------------------------------------------------


class PersistedMovementRow(WireModel):
    """Fila plana ya persistida. Solo cambia vía `update_ingress_line`."""

    id: int
    date: Date = _wire("date", "fecha")
    document_number: str = _wire("documentNumber", "numeroDocumento")
    supplier_tax_id: str | None = _wire("supplierTaxId", "supplierRut", default=None)
    supplier_name: str | None = None
    product_name: str | None = None
    product_sku: str | None = None
    area_name: str | None = _wire("areaName", "areaNombre", default=None)
    quantity: float = _wire("quantity", "cantidad", default=0)
    unit_cost: float = _wire("unitCost", "costoUnitario", default=0)
    net_amount: int = _wire("netAmount", "totalNeto", default=0)
    gross_amount: int = _wire("grossAmount", "totalBruto", default=0)
    responsible: str | None = _wire(
        "responsible", "usuarioResponsable", "responsable", default=None
    )

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _date_only(value)

    @field_validator("document_number", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("quantity", "unit_cost", mode="before")
    @classmethod
    def _missing_number(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("net_amount", "gross_amount", mode="before")
    @classmethod
    def _currency(cls, value: Any) -> int:
        return round_currency(value)

    @property
    def group_key(self) -> tuple[str, str]:
        return (self.document_number, self.supplier_tax_id or "")


class PendingLineEdit(WireModel):
    """Valores en edición de una fila; no tocan la fila confirmada."""

    row_id: int = Field(..., exclude=True)
    quantity: float
    unit_cost: float


class LogicalDocument(WireModel):
    """Agregado derivado (nunca persistido) de filas con la misma clave."""

    key: tuple[str, str]
    date: Date
    document_number: str
    supplier_tax_id: str | None = None
    supplier_name: str | None = None
    responsible: str | None = None
    children: tuple[PersistedMovementRow, ...] = ()
    total_net: int = 0
    total_gross: int = 0

    @property
    def item_count(self) -> int:
        return len(self.children)

    @property
    def total_tax(self) -> int:
        return self.total_gross - self.total_net


class OutgoingSummary(WireModel):
    folio: str
    date: Date = _wire("date", "fecha")
    responsible: str | None = _wire("responsible", "usuarioResponsable", default=None)
    destination: str | None = _wire("destino", "destination", default=None)
    total_net: int = _wire("totalNet", "totalNeto", default=0)

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _date_only(value)

    @field_validator("folio", mode="before")
    @classmethod
    def _folio(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("total_net", mode="before")
    @classmethod
    def _currency(cls, value: Any) -> int:
        return round_currency(value)


class OutgoingDetailLine(WireModel):
    product_name: str | None = None
    responsible: str | None = _wire("usuarioResponsable", "responsible", default=None)
    origin_area: str | None = _wire("areaOrigen", "originArea", default=None)
    destination_area: str | None = _wire("areaDestino", "destinationArea", default=None)
    reason_code: str | None = _wire("tipoSalida", "reasonCode", default=None)
    quantity: float = _wire("cantidad", "quantity", default=0)
    net_amount: int = _wire("valorNeto", "netAmount", default=0)

    @field_validator("quantity", mode="before")
    @classmethod
    def _missing_quantity(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("net_amount", mode="before")
    @classmethod
    def _currency(cls, value: Any) -> int:
        return round_currency(value)


class OutgoingGuide(WireModel):
    """Detalle de un folio con sus agregados."""

    folio: str
    lines: tuple[OutgoingDetailLine, ...] = ()
    item_count: int = 0
    total_units: float = 0
    has_waste: bool = False
    total_net: int = 0

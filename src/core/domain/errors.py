"""Excepciones tipadas del dominio.

Por qué una jerarquía propia:
- Cada regla de negocio (SKU duplicado, stock insuficiente, guía vacía) se
  captura por tipo, no parseando mensajes.
- Las excepciones llevan datos estructurados para que la CLI (o cualquier otra
  capa) pueda presentarlos sin conocer el Core.

Regla: los errores detectados localmente nunca llegan a la red y dejan el
estado del builder intacto. Solo `RemoteError` proviene del colaborador remoto.
"""

from __future__ import annotations

from typing import Iterable


class StockDocsError(Exception):
    """Base de todos los errores del Core."""


class ValidationError(StockDocsError):
    """Campo requerido ausente o inválido. Bloquea la operación local."""


class MissingFieldsError(ValidationError):
    """Faltan campos obligatorios en el formulario activo."""

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = tuple(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class MissingDestinationError(ValidationError):
    """Modo GENERAL sin área de destino en la línea."""

    def __init__(self, sku: str) -> None:
        self.sku = sku
        super().__init__(f"Line {sku!r} requires a destination area in general mode")


class DuplicateSkuError(StockDocsError):
    """El SKU (normalizado) ya existe en el documento en preparación."""

    def __init__(self, sku: str) -> None:
        self.sku = sku
        super().__init__(f"SKU {sku!r} is already staged in this document")


class InsufficientStockError(StockDocsError):
    """La cantidad supera el stock del último snapshot consultado."""

    def __init__(self, sku: str, requested: float, available: float) -> None:
        self.sku = sku
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {sku!r}: requested {requested:g}, available {available:g}"
        )


class EmptyDocumentError(ValidationError):
    """Se intentó finalizar un documento sin líneas."""


class EmptyGuideError(EmptyDocumentError):
    """Guía de consumo sin líneas."""


class SubmissionInProgressError(StockDocsError):
    """El builder ya tiene un envío en curso."""


class RemoteError(StockDocsError):
    """Fallo de red o del servidor; el mensaje del servidor se conserva tal cual."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ConcurrentEditConflict(RemoteError):
    """El servidor rechazó la actualización por conflicto (HTTP 409)."""

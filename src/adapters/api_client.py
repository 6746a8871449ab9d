"""Cliente HTTP del backend de inventario.

Implementa `CatalogGateway`, `IngressGateway` y `OutgoingGateway` sobre un
`httpx.AsyncClient`. No agrega protocolo propio: solo traduce las operaciones
del Core a los endpoints existentes y valida las respuestas con los modelos
del dominio.

Errores:
- Respuestas 4xx/5xx y fallos de red se convierten en `RemoteError`, con el
  mensaje del servidor tal cual (campo `message`, o el cuerpo en texto).
- HTTP 409 se informa como `ConcurrentEditConflict`.
- Sin reintentos automáticos: reintentar es decisión del operador.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.errors import ConcurrentEditConflict, RemoteError
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

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _server_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()

    text = response.text.strip()
    return text or f"HTTP {response.status_code} {response.reason_phrase}".strip()


def to_remote_error(response: httpx.Response) -> RemoteError:
    message = _server_message(response)
    if response.status_code == 409:
        return ConcurrentEditConflict(message, status_code=response.status_code)
    return RemoteError(message, status_code=response.status_code)


class StockApiClient:
    """Gateways remotos sobre HTTP. Usar como `async with`."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StockApiClient":
        return cls(build_async_client(settings, transport=transport))

    async def __aenter__(self) -> "StockApiClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Catálogo
    # ------------------------------------------------------------------

    async def list_areas(self) -> list[Area]:
        return self._parse_list(Area, await self._request("GET", "/api/areas"))

    async def list_products(self) -> list[CatalogProduct]:
        return self._parse_list(CatalogProduct, await self._request("GET", "/api/products"))

    async def search_stock_for_guide(self, area_id: int | None, query: str) -> list[StockSnapshotEntry]:
        params: dict[str, Any] = {"query": query}
        # Sin areaId el backend busca en todo el inventario
        if area_id is not None:
            params["areaId"] = area_id
        data = await self._request("GET", "/api/salidas/buscar-productos", params=params)
        return self._parse_list(StockSnapshotEntry, data)

    # ------------------------------------------------------------------
    # Ingresos
    # ------------------------------------------------------------------

    async def submit_ingress_document(self, submission: IngressSubmission) -> Any:
        return await self._request("POST", "/api/ingresos", json=submission.to_wire())

    async def fetch_ingress_history_flat(self) -> list[PersistedMovementRow]:
        data = await self._request("GET", "/api/ingresos/historial")
        return self._parse_list(PersistedMovementRow, data)

    async def update_ingress_line(self, row_id: int, edit: PendingLineEdit) -> PersistedMovementRow:
        data = await self._request("PUT", f"/api/ingresos/{row_id}", json=edit.to_wire())
        return self._parse_one(PersistedMovementRow, data)

    # ------------------------------------------------------------------
    # Salidas
    # ------------------------------------------------------------------

    async def submit_consumption_guide(self, submission: ConsumptionSubmission) -> Any:
        return await self._request("POST", "/api/salidas", json=submission.to_wire())

    async def fetch_outgoing_summaries(self) -> list[OutgoingSummary]:
        return self._parse_list(OutgoingSummary, await self._request("GET", "/api/historial/salidas"))

    async def fetch_outgoing_detail(self, folio: str) -> list[OutgoingDetailLine]:
        data = await self._request("GET", f"/api/historial/salidas/{quote(str(folio), safe='')}")
        return self._parse_list(OutgoingDetailLine, data)

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = to_remote_error(exc.response)
            logger.warning("%s %s -> %s: %s", method, url, exc.response.status_code, error.message)
            raise error from exc
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise RemoteError(f"Could not reach the inventory server: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _parse_list(model: type[M], data: Any) -> list[M]:
        if not isinstance(data, list):
            raise RemoteError(f"Unexpected response: expected a list of {model.__name__}")
        try:
            return [model.model_validate(item) for item in data]
        except PydanticValidationError as exc:
            raise RemoteError(f"Malformed {model.__name__} in server response: {exc}") from exc

    @staticmethod
    def _parse_one(model: type[M], data: Any) -> M:
        if not isinstance(data, dict):
            raise RemoteError(f"Unexpected response: expected a {model.__name__}")
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise RemoteError(f"Malformed {model.__name__} in server response: {exc}") from exc


"""Debounced autocomplete over the remote catalog.

Both builders ask this index for candidates while the operator types:
suppliers and products for ingress documents, stock rows for consumption
guides. Three rules shape every search:

- queries shorter than `min_chars` never reach the network;
- a fixed quiet period (debounce) precedes each remote call;
- last query wins: a search superseded while debouncing or while its fetch
  is in flight returns `None` and never replaces `latest`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, Iterator, Sequence, TypeVar, Union

from core.config import AppSettings
from core.domain.models import CatalogProduct, StockSnapshotEntry, Supplier, canonical_code
from core.interfaces.remote import CatalogGateway
from core.services.filters import matches_text

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class SupplierScope:
    """Unique suppliers derived from the product catalog."""


@dataclass(frozen=True)
class ProductScope:
    """Catalog products, optionally restricted to one supplier."""

    supplier_tax_id: str | None = None


@dataclass(frozen=True)
class StockScope:
    """Stock rows of one area, or of every area when `area_id` is None."""

    area_id: int | None = None


Scope = Union[SupplierScope, ProductScope, StockScope]


class SuggestionResult(Generic[T]):
    """Lazy, finite, restartable view over the candidates of one query.

    Filtering happens on iteration, so each `iter()` starts over from the
    first candidate.
    """

    def __init__(
        self,
        query: str,
        candidates: Sequence[T] = (),
        fields: Callable[[T], Iterable[str | None]] = lambda _: (),
    ) -> None:
        self.query = query
        self._candidates = tuple(candidates)
        self._fields = fields

    @classmethod
    def empty(cls, query: str = "") -> "SuggestionResult[T]":
        return cls(query)

    def __iter__(self) -> Iterator[T]:
        return (item for item in self._candidates if matches_text(self.query, self._fields(item)))

    def first(self) -> T | None:
        return next(iter(self), None)

    def to_list(self) -> list[T]:
        return list(self)

    def __repr__(self) -> str:
        return f"SuggestionResult(query={self.query!r}, candidates={len(self._candidates)})"


def unique_suppliers(products: Iterable[CatalogProduct]) -> list[Supplier]:
    """One supplier per canonical tax id, first occurrence wins."""

    seen: dict[str, Supplier] = {}
    for product in products:
        if not product.supplier_tax_id or not product.supplier_name:
            continue
        tax_id = canonical_code(product.supplier_tax_id)
        if tax_id in seen:
            continue
        seen[tax_id] = Supplier(tax_id=tax_id, name=product.supplier_name.strip().upper())
    return list(seen.values())


def _supplier_fields(supplier: Supplier) -> tuple[str, str]:
    return (supplier.name, supplier.tax_id)


def _product_fields(product: CatalogProduct) -> tuple[str, str]:
    return (product.sku, product.name)


def _stock_fields(entry: StockSnapshotEntry) -> tuple[str, str]:
    return (entry.product_name, entry.sku)


class SuggestionIndex:
    def __init__(
        self,
        catalog: CatalogGateway,
        *,
        debounce_seconds: float = 0.3,
        min_chars: int = 2,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._catalog = catalog
        self._debounce_seconds = debounce_seconds
        self._min_chars = min_chars
        self._sleep = sleep
        self._generation = 0
        self._products: tuple[CatalogProduct, ...] | None = None
        self.latest: SuggestionResult | None = None

    @classmethod
    def from_settings(cls, catalog: CatalogGateway, settings: AppSettings) -> "SuggestionIndex":
        return cls(
            catalog,
            debounce_seconds=settings.search_debounce_seconds,
            min_chars=settings.search_min_chars,
        )

    async def products(self) -> tuple[CatalogProduct, ...]:
        """The product catalog, fetched once and cached."""

        if self._products is None:
            self._products = tuple(await self._catalog.list_products())
            logger.debug("catalog loaded: %d products", len(self._products))
        return self._products

    async def refresh_catalog(self) -> tuple[CatalogProduct, ...]:
        self._products = None
        return await self.products()

    async def find_product(self, supplier_tax_id: str | None, sku: str | None) -> CatalogProduct | None:
        """Exact (canonical) sku match within one supplier's products."""

        wanted = canonical_code(sku)
        if not wanted:
            return None
        supplier = canonical_code(supplier_tax_id)
        for product in await self.products():
            if product.canonical_sku != wanted:
                continue
            if supplier and canonical_code(product.supplier_tax_id) != supplier:
                continue
            return product
        return None

    def cancel(self) -> None:
        """Drop any in-flight search, e.g. once the operator picked a suggestion."""

        self._generation += 1
        self.latest = None

    async def search(self, scope: Scope, query: str) -> SuggestionResult | None:
        self._generation += 1
        generation = self._generation
        text = (query or "").strip()

        if len(text) < self._min_chars:
            self.latest = SuggestionResult.empty(text)
            return self.latest

        await self._sleep(self._debounce_seconds)
        if generation != self._generation:
            logger.debug("search %r superseded while debouncing", text)
            return None

        result = await self._fetch(scope, text)
        if generation != self._generation:
            logger.debug("discarding stale results for %r", text)
            return None

        self.latest = result
        return result

    async def _fetch(self, scope: Scope, text: str) -> SuggestionResult:
        if isinstance(scope, SupplierScope):
            return SuggestionResult(text, unique_suppliers(await self.products()), _supplier_fields)

        if isinstance(scope, ProductScope):
            supplier = canonical_code(scope.supplier_tax_id)
            products = [
                product
                for product in await self.products()
                if not supplier or canonical_code(product.supplier_tax_id) == supplier
            ]
            return SuggestionResult(text, products, _product_fields)

        if isinstance(scope, StockScope):
            rows = await self._catalog.search_stock_for_guide(scope.area_id, text)
            return SuggestionResult(text, rows, _stock_fields)

        raise TypeError(f"unsupported suggestion scope: {scope!r}")

"""Read-only history of consumption guides (summaries and per-folio detail)."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from core.domain.models import OutgoingDetailLine, OutgoingGuide, OutgoingSummary, ReasonCode
from core.interfaces.remote import OutgoingGateway
from core.services.filters import matches_text, within_range

logger = logging.getLogger(__name__)


def fold_guide(folio: str, lines: Iterable[OutgoingDetailLine]) -> OutgoingGuide:
    lines = tuple(lines)
    return OutgoingGuide(
        folio=folio,
        lines=lines,
        item_count=len(lines),
        total_units=sum(line.quantity for line in lines),
        has_waste=any((line.reason_code or "").upper() == ReasonCode.WASTE.value for line in lines),
        total_net=sum(line.net_amount for line in lines),
    )


class OutgoingHistory:
    def __init__(self, gateway: OutgoingGateway) -> None:
        self._gateway = gateway
        self._summaries: list[OutgoingSummary] = []

    @property
    def summaries(self) -> list[OutgoingSummary]:
        return list(self._summaries)

    async def load(self) -> list[OutgoingSummary]:
        summaries = list(await self._gateway.fetch_outgoing_summaries())
        summaries.sort(key=lambda summary: summary.date, reverse=True)
        self._summaries = summaries
        logger.debug("loaded %d outgoing summaries", len(summaries))
        return self.summaries

    def filter(
        self,
        text: str = "",
        start: date | None = None,
        end: date | None = None,
    ) -> list[OutgoingSummary]:
        return [
            summary
            for summary in self._summaries
            if matches_text(text, (summary.folio, summary.responsible, summary.destination))
            and within_range(summary.date, start, end)
        ]

    async def detail(self, folio: str) -> OutgoingGuide:
        return fold_guide(folio, await self._gateway.fetch_outgoing_detail(folio))

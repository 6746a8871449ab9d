"""Consumption guides in fixed-origin and general mode."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from core.domain.errors import (
    EmptyDocumentError,
    EmptyGuideError,
    InsufficientStockError,
    MissingDestinationError,
    MissingFieldsError,
    RemoteError,
    ValidationError,
)
from core.domain.models import (
    CONSUMED_AT_ORIGIN,
    ConsumptionForm,
    ConsumptionHeader,
    OriginMode,
    ReasonCode,
    StockSnapshotEntry,
)
from core.services.consumption_builder import ConsumptionGuideBuilder


def _entry(sku="ARR-01", area_id=1, available=10) -> StockSnapshotEntry:
    return StockSnapshotEntry(
        sku=sku, product_name="Arroz", unit_of_measure="KG", area_id=area_id, available_quantity=available
    )


@pytest.fixture
def general(inventory):
    return ConsumptionGuideBuilder(inventory, inventory.areas)


@pytest.fixture
def fixed(inventory):
    return ConsumptionGuideBuilder(inventory, inventory.areas, origin_mode=OriginMode.fixed(1))


class TestOriginMode:

    def test_default_is_general(self, general):
        assert general.origin_mode.is_general

    def test_fixed_requires_area(self):
        with pytest.raises(ValueError):
            OriginMode(kind="FIXED")

    def test_switching_mode_discards_lines(self, general):
        general.select_product(_entry())
        general.set_quantity(1)
        general.set_destination(2)
        general.add_line()

        discarded = general.set_origin_mode(OriginMode.fixed(1))
        assert discarded == 1
        assert general.lines == ()
        assert general.form == ConsumptionForm()

    def test_same_mode_keeps_lines(self, fixed):
        fixed.add_line(ConsumptionForm(entry=_entry(), quantity=1))
        assert fixed.set_origin_mode(OriginMode.fixed(1)) == 0
        assert len(fixed.lines) == 1


class TestFixedOrigin:

    def test_line_is_consumed_at_origin(self, fixed):
        line = fixed.add_line(ConsumptionForm(entry=_entry(), quantity=4))
        assert line.destination_label == CONSUMED_AT_ORIGIN
        assert line.destination_area_id is None
        assert line.origin_area_id == 1
        assert line.origin_area_name == "Bodega"

    def test_destination_cannot_be_set(self, fixed):
        with pytest.raises(ValidationError):
            fixed.set_destination(2)
        with pytest.raises(ValidationError):
            fixed.add_line(ConsumptionForm(entry=_entry(), quantity=1, destination_area_id=2))

    def test_entry_from_other_area_is_rejected(self, fixed):
        with pytest.raises(ValidationError):
            fixed.select_product(_entry(area_id=2))

    def test_submission_uses_header_area(self, fixed, inventory):
        fixed.add_line(ConsumptionForm(entry=_entry(), quantity=4))
        fixed.add_line(ConsumptionForm(entry=_entry(sku="ACE-02", available=5), quantity=5))
        header = ConsumptionHeader(date=date(2025, 3, 2), reason_code=ReasonCode.WASTE)

        created = asyncio.run(fixed.finalize(header, responsible="ana"))

        assert created == {"folio": 101}
        wire = inventory.guide_submissions[0].to_wire()
        assert wire["originAreaId"] == 1
        assert wire["responsible"] == "ana"
        assert [detail["originAreaId"] for detail in wire["details"]] == [1, 1]
        assert [detail["destinationAreaId"] for detail in wire["details"]] == [None, None]
        assert fixed.lines == ()


class TestGeneralOrigin:

    def test_destination_is_required(self, general):
        with pytest.raises(MissingDestinationError) as excinfo:
            general.add_line(ConsumptionForm(entry=_entry(), quantity=1))
        assert excinfo.value.sku == "ARR-01"

    def test_destination_label_is_area_name(self, general):
        line = general.add_line(ConsumptionForm(entry=_entry(area_id=1), quantity=1, destination_area_id=2))
        assert line.destination_label == "Cocina"
        assert line.origin_area_id == 1

    def test_unknown_destination(self, general):
        with pytest.raises(ValidationError, match="Unknown destination"):
            general.add_line(ConsumptionForm(entry=_entry(), quantity=1, destination_area_id=42))

    def test_entry_without_area(self, general):
        with pytest.raises(MissingFieldsError) as excinfo:
            general.add_line(ConsumptionForm(entry=_entry(area_id=None), quantity=1, destination_area_id=2))
        assert excinfo.value.fields == ("origin_area_id",)

    def test_submission_keeps_per_line_origin(self, general, inventory):
        general.add_line(ConsumptionForm(entry=_entry(area_id=1), quantity=2, destination_area_id=3))
        general.add_line(ConsumptionForm(entry=_entry(sku="ACE-02", area_id=2), quantity=1, destination_area_id=3))

        asyncio.run(general.finalize(ConsumptionHeader(date=date(2025, 3, 2)), responsible="ana"))

        wire = inventory.guide_submissions[0].to_wire()
        assert wire["originAreaId"] is None
        assert [(d["originAreaId"], d["destinationAreaId"]) for d in wire["details"]] == [(1, 3), (2, 3)]
        assert wire["details"][0]["reasonCode"] == "CONSUMO"


class TestStockChecks:

    def test_quantity_above_snapshot(self, fixed):
        with pytest.raises(InsufficientStockError) as excinfo:
            fixed.add_line(ConsumptionForm(entry=_entry(available=3), quantity=4))
        assert (excinfo.value.requested, excinfo.value.available) == (4, 3)
        assert fixed.lines == ()

    def test_quantity_equal_to_snapshot(self, fixed):
        line = fixed.add_line(ConsumptionForm(entry=_entry(available=3), quantity=3))
        assert line.snapshot_available_quantity == 3

    def test_missing_sku_and_quantity(self, fixed):
        with pytest.raises(MissingFieldsError) as excinfo:
            fixed.add_line(ConsumptionForm())
        assert excinfo.value.fields == ("sku", "quantity")

    def test_non_positive_quantity(self, fixed):
        with pytest.raises(ValidationError, match="greater than zero"):
            fixed.add_line(ConsumptionForm(entry=_entry(), quantity=0))

    @pytest.mark.parametrize("quantity", [float("nan"), float("inf")])
    def test_non_finite_quantity(self, fixed, quantity):
        with pytest.raises(ValidationError, match="finite"):
            fixed.add_line(ConsumptionForm(entry=_entry(), quantity=quantity))
        assert fixed.lines == ()


class TestFinalize:

    def test_empty_guide(self, fixed, inventory):
        with pytest.raises(EmptyGuideError):
            asyncio.run(fixed.finalize(responsible="ana"))
        assert inventory.guide_submissions == []

    def test_empty_guide_is_an_empty_document(self):
        assert issubclass(EmptyGuideError, EmptyDocumentError)
        assert issubclass(EmptyGuideError, ValidationError)

    def test_rejected_finalize_keeps_header(self, fixed, inventory):
        fixed.add_line(ConsumptionForm(entry=_entry(), quantity=1))
        with pytest.raises(MissingFieldsError):
            asyncio.run(fixed.finalize(ConsumptionHeader(reason_code=ReasonCode.WASTE), responsible=" "))
        assert fixed.header.reason_code is ReasonCode.CONSUMPTION
        assert inventory.guide_submissions == []

    def test_remote_failure_preserves_draft(self, fixed, inventory):
        fixed.add_line(ConsumptionForm(entry=_entry(), quantity=1))
        inventory.fail_with = RemoteError("Stock insuficiente en servidor", status_code=409)
        with pytest.raises(RemoteError):
            asyncio.run(fixed.finalize(responsible="ana"))
        assert len(fixed.lines) == 1
        assert fixed.submitting is False

    def test_remove_line(self, fixed):
        fixed.add_line(ConsumptionForm(entry=_entry(), quantity=1))
        fixed.add_line(ConsumptionForm(entry=_entry(sku="ACE-02"), quantity=1))
        removed = fixed.remove_line(0)
        assert removed.sku == "ARR-01"
        assert [line.sku for line in fixed.lines] == ["ACE-02"]

"""Typer commands driven against the in-memory inventory."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from cli import doctor
from cli import main as cli_main
from conftest import make_row
from core.domain.errors import RemoteError
from core.domain.models import Area, OutgoingDetailLine

runner = CliRunner()


@pytest.fixture(autouse=True)
def offline(monkeypatch, inventory, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr(cli_main, "open_api", lambda settings: inventory)
    return inventory


def _write(tmp_path, name, payload) -> str:
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def _ingress_draft(tmp_path, lines=None) -> str:
    return _write(
        tmp_path,
        "ingress.json",
        {
            "header": {"date": "2025-03-01", "documentNumber": "F-1001", "supplierTaxId": "76.111.222-3"},
            "lines": lines
            or [
                {"sku": "ARR-01", "quantity": 10, "unitPrice": 1000, "areaId": 1},
                {"sku": "ACE-02", "quantity": 5, "unitPrice": 2000, "areaId": 1},
            ],
        },
    )


# =============================================================================
# ingress submit
# =============================================================================


class TestIngressSubmit:

    def test_dry_run_shows_totals_and_sends_nothing(self, tmp_path, inventory):
        result = runner.invoke(cli_main.app, ["ingress", "submit", _ingress_draft(tmp_path), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "$23.800" in result.output
        assert "Dry run" in result.output
        assert inventory.ingress_submissions == []

    def test_submit_uses_catalog_values(self, tmp_path, inventory):
        result = runner.invoke(
            cli_main.app, ["ingress", "submit", _ingress_draft(tmp_path), "--yes", "--responsible", "ana"]
        )
        assert result.exit_code == 0, result.output
        submission = inventory.ingress_submissions[0]
        assert submission.supplier_name == "ACME"
        assert submission.responsible == "ana"
        assert [item.name for item in submission.items] == ["Arroz", "Aceite"]

    def test_declined_confirmation(self, tmp_path, inventory):
        result = runner.invoke(cli_main.app, ["ingress", "submit", _ingress_draft(tmp_path)], input="n\n")
        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert inventory.ingress_submissions == []

    def test_duplicate_sku_fails(self, tmp_path, inventory):
        lines = [
            {"sku": "ARR-01", "quantity": 1, "unitPrice": 10, "areaId": 1},
            {"sku": "arr-01", "quantity": 2, "unitPrice": 10, "areaId": 1},
        ]
        result = runner.invoke(cli_main.app, ["ingress", "submit", _ingress_draft(tmp_path, lines), "--yes"])
        assert result.exit_code == 1
        assert "Line 2" in result.output
        assert "already staged" in result.output
        assert inventory.ingress_submissions == []

    def test_unknown_product_needs_a_name(self, tmp_path):
        lines = [{"sku": "NEW-9", "quantity": 1, "unitPrice": 10, "areaId": 1}]
        result = runner.invoke(cli_main.app, ["ingress", "submit", _ingress_draft(tmp_path, lines), "--yes"])
        assert result.exit_code == 1
        assert "name" in result.output

    def test_non_finite_quantity_in_draft(self, tmp_path, inventory):
        path = tmp_path / "nan.json"
        path.write_text(
            '{"header": {"date": "2025-03-01", "documentNumber": "F-1", "supplierTaxId": "76.111.222-3"},'
            ' "lines": [{"sku": "ARR-01", "quantity": NaN, "unitPrice": 10, "areaId": 1}]}',
            encoding="utf-8",
        )
        result = runner.invoke(cli_main.app, ["ingress", "submit", str(path), "--yes"])
        assert result.exit_code == 1
        assert "finite" in result.output
        assert inventory.ingress_submissions == []

    def test_invalid_draft_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        result = runner.invoke(cli_main.app, ["ingress", "submit", str(path)])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output


# =============================================================================
# guide submit
# =============================================================================


class TestGuideSubmit:

    def test_fixed_origin(self, tmp_path, inventory):
        draft = _write(
            tmp_path,
            "guide.json",
            {"date": "2025-03-02", "reasonCode": "MERMA", "originAreaId": 1, "lines": [{"sku": "ARR-01", "quantity": 2}]},
        )
        result = runner.invoke(cli_main.app, ["guide", "submit", draft, "--yes"])
        assert result.exit_code == 0, result.output
        assert "folio 101" in result.output
        wire = inventory.guide_submissions[0].to_wire()
        assert wire["originAreaId"] == 1
        assert wire["details"][0]["reasonCode"] == "MERMA"

    def test_general_origin_per_line(self, tmp_path, inventory):
        draft = _write(
            tmp_path,
            "guide.json",
            {"lines": [{"sku": "ARR-01", "quantity": 2, "originAreaId": 2, "destinationAreaId": 3}]},
        )
        result = runner.invoke(cli_main.app, ["guide", "submit", draft, "--yes"])
        assert result.exit_code == 0, result.output
        detail = inventory.guide_submissions[0].details[0]
        assert (detail.origin_area_id, detail.destination_area_id) == (2, 3)

    def test_ambiguous_origin(self, tmp_path, inventory):
        draft = _write(tmp_path, "guide.json", {"lines": [{"sku": "ARR-01", "quantity": 1, "destinationAreaId": 3}]})
        result = runner.invoke(cli_main.app, ["guide", "submit", draft, "--yes"])
        assert result.exit_code == 1
        assert "several areas" in result.output

    def test_insufficient_stock(self, tmp_path, inventory):
        draft = _write(
            tmp_path, "guide.json", {"originAreaId": 2, "lines": [{"sku": "ARR-01", "quantity": 4}]}
        )
        result = runner.invoke(cli_main.app, ["guide", "submit", draft, "--yes"])
        assert result.exit_code == 1
        assert "Insufficient stock" in result.output
        assert inventory.guide_submissions == []


# =============================================================================
# search
# =============================================================================


class TestSearch:

    def test_suppliers(self):
        result = runner.invoke(cli_main.app, ["search", "suppliers", "acm"])
        assert result.exit_code == 0, result.output
        assert "ACME" in result.output

    def test_short_query(self, inventory):
        result = runner.invoke(cli_main.app, ["search", "stock", "a"])
        assert result.exit_code == 0
        assert "at least 2" in result.output
        assert inventory.calls == []

    def test_stock_in_area(self):
        result = runner.invoke(cli_main.app, ["search", "stock", "arroz", "--area", "2"])
        assert result.exit_code == 0, result.output
        assert "Cocina" in result.output

    def test_bracketed_names_are_shown_verbatim(self, inventory):
        inventory.products[1] = inventory.products[1].model_copy(update={"name": "Aceite [/caja]"})
        inventory.areas.append(Area(id=4, name="Camara [Kg]"))

        result = runner.invoke(cli_main.app, ["search", "products", "aceite"])
        assert result.exit_code == 0, result.output
        assert "Aceite [/caja]" in result.output

        result = runner.invoke(cli_main.app, ["search", "areas"])
        assert result.exit_code == 0, result.output
        assert "Camara [Kg]" in result.output


# =============================================================================
# history
# =============================================================================


class TestHistory:

    @pytest.fixture(autouse=True)
    def rows(self, inventory):
        inventory.rows = [
            make_row(1, "F-1001", quantity=10, unit_cost=1000, sku="ARR-01"),
            make_row(2, "F-1001", quantity=5, unit_cost=2000, sku="ACE-02"),
        ]

    def test_ingress_table(self):
        result = runner.invoke(cli_main.app, ["history", "ingress", "--text", "acme"])
        assert result.exit_code == 0, result.output
        assert "F-1001" in result.output
        assert "$23.800" in result.output

    def test_ingress_json_export(self, tmp_path):
        target = tmp_path / "out" / "documents.json"
        result = runner.invoke(cli_main.app, ["history", "ingress", "--json", str(target)])
        assert result.exit_code == 0, result.output
        exported = json.loads(target.read_text(encoding="utf-8"))
        assert exported[0]["documentNumber"] == "F-1001"
        assert exported[0]["totalTax"] == 3800
        assert exported[0]["itemCount"] == 2

    def test_show_document(self):
        result = runner.invoke(cli_main.app, ["history", "show", "F-1001"])
        assert result.exit_code == 0, result.output
        assert "$20.000" in result.output

    def test_show_unknown_document(self):
        result = runner.invoke(cli_main.app, ["history", "show", "X-1"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_edit_with_confirmation(self, inventory):
        result = runner.invoke(cli_main.app, ["history", "edit", "1", "--quantity", "4", "--yes"])
        assert result.exit_code == 0, result.output
        assert "Row 1 updated" in result.output
        assert inventory.updates[0][1].quantity == 4

    def test_edit_declined(self, inventory):
        result = runner.invoke(cli_main.app, ["history", "edit", "1", "--unit-cost", "5"], input="n\n")
        assert result.exit_code == 0, result.output
        assert "Edit discarded" in result.output
        assert inventory.updates == []

    def test_edit_rejects_invalid_values(self, inventory):
        result = runner.invoke(cli_main.app, ["history", "edit", "1", "--quantity", "0", "--yes"])
        assert result.exit_code == 1
        assert inventory.updates == []

    def test_edit_rejects_infinite_quantity(self, inventory):
        result = runner.invoke(cli_main.app, ["history", "edit", "1", "--quantity", "inf", "--yes"])
        assert result.exit_code == 1
        assert "finite" in result.output
        assert inventory.updates == []

    def test_edit_reports_failed_reload(self, inventory, monkeypatch):
        async def unavailable():
            raise RemoteError("down", status_code=503)

        original_update = inventory.update_ingress_line

        async def update_then_fail(row_id, edit):
            updated = await original_update(row_id, edit)
            monkeypatch.setattr(inventory, "fetch_ingress_history_flat", unavailable)
            return updated

        monkeypatch.setattr(inventory, "update_ingress_line", update_then_fail)
        result = runner.invoke(cli_main.app, ["history", "edit", "1", "--quantity", "4", "--yes"])
        assert result.exit_code == 0, result.output
        assert "Row 1 updated" in result.output
        assert "could not be reloaded" in result.output

    def test_edit_needs_a_value(self):
        result = runner.invoke(cli_main.app, ["history", "edit", "1"])
        assert result.exit_code != 0

    def test_folio_detail(self, inventory):
        inventory.details["10"] = [
            OutgoingDetailLine(product_name="Arroz", reason_code="MERMA", quantity=2, net_amount=1000)
        ]
        result = runner.invoke(cli_main.app, ["history", "folio", "10"])
        assert result.exit_code == 0, result.output
        assert "Includes waste" in result.output


# =============================================================================
# doctor
# =============================================================================


class TestDoctor:

    def test_setup_api_writes_user_env(self, tmp_path):
        result = runner.invoke(
            cli_main.app, ["doctor", "setup-api", "--base-url", "https://stock.example", "--token", "abc"]
        )
        assert result.exit_code == 0, result.output
        content = (tmp_path / "config" / "stockdocs" / ".env").read_text(encoding="utf-8")
        assert "STOCKDOCS_API_BASE_URL=https://stock.example" in content
        assert "STOCKDOCS_API_TOKEN=abc" in content

    def test_setup_api_rejects_bad_url(self):
        result = runner.invoke(cli_main.app, ["doctor", "setup-api", "--base-url", "stock", "--token", ""])
        assert result.exit_code != 0

    def test_run_reports_connectivity(self, monkeypatch):
        async def fake_check(settings):
            return True, "3 areas"

        monkeypatch.setattr(doctor, "_check_api", fake_check)
        result = runner.invoke(cli_main.app, ["doctor", "run"])
        assert result.exit_code == 0, result.output
        assert "3 areas" in result.output

    def test_run_fails_when_api_is_down(self, monkeypatch):
        async def fake_check(settings):
            return False, "refused"

        monkeypatch.setattr(doctor, "_check_api", fake_check)
        result = runner.invoke(cli_main.app, ["doctor", "run"])
        assert result.exit_code == 1

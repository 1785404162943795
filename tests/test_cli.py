from __future__ import annotations

import logging
from decimal import Decimal
from unittest.mock import patch

import pytest
import yaml

from einvoice.cli import EXIT_ERROR, EXIT_INVALID, EXIT_OK, _setup_logging, main, run
from einvoice.models.invoice import SCHEMA_UBL
from einvoice.services.cii_builder import to_bytes
from einvoice.services.cii_parser import parse_file


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    monkeypatch.setattr("einvoice.config.get_config_dir", lambda: config_dir)
    monkeypatch.delenv("EINVOICE_LOG_LEVEL", raising=False)


@pytest.fixture
def invoice_file(tmp_path, scenario_a):
    path = tmp_path / "invoice.xml"
    path.write_bytes(to_bytes(scenario_a))
    return path


class TestUsage:
    @pytest.mark.parametrize(
        "argv",
        [[], ["validate"], ["info", "a.xml", "b.xml"], ["build", "invoice.yaml"], ["frobnicate", "x"]],
    )
    def test_bad_usage(self, argv, capsys):
        assert run(argv) == EXIT_ERROR
        assert "Usage: einvoice" in capsys.readouterr().err


class TestValidate:
    def test_valid(self, invoice_file, capsys):
        assert run(["validate", str(invoice_file)]) == EXIT_OK
        assert "Invoice is valid" in capsys.readouterr().out

    def test_invalid(self, tmp_path, scenario_a, capsys):
        scenario_a.number = ""
        path = tmp_path / "broken.xml"
        path.write_bytes(to_bytes(scenario_a))

        assert run(["validate", str(path)]) == EXIT_INVALID
        out = capsys.readouterr().out
        assert "BR-2: " in out
        assert "error(s)" in out

    def test_missing_file(self, tmp_path, capsys):
        assert run(["validate", str(tmp_path / "nope.xml")]) == EXIT_ERROR
        assert "Error (io)" in capsys.readouterr().err

    def test_ubl_document(self, tmp_path, scenario_a, capsys):
        scenario_a.schema_type = SCHEMA_UBL
        path = tmp_path / "ubl.xml"
        path.write_bytes(to_bytes(scenario_a))
        assert run(["validate", str(path)]) == EXIT_OK
        assert "Invoice is valid" in capsys.readouterr().out

    def test_unsupported_document(self, tmp_path, capsys):
        path = tmp_path / "order.xml"
        path.write_bytes(b'<Order xmlns="urn:oasis:names:specification:ubl:schema:xsd:Order-2"/>')
        assert run(["validate", str(path)]) == EXIT_ERROR
        assert "Error (unsupported-schema)" in capsys.readouterr().err

    def test_ill_formed(self, tmp_path, capsys):
        path = tmp_path / "bad.xml"
        path.write_bytes(b"<not closed")
        assert run(["validate", str(path)]) == EXIT_ERROR
        assert "Error (parse)" in capsys.readouterr().err


class TestInfo:
    def test_summary(self, invoice_file, capsys):
        assert run(["info", str(invoice_file)]) == EXIT_OK
        out = capsys.readouterr().out
        assert "INV-2024-001 (type 380)" in out
        assert "Issued:    2024-03-15" in out
        assert "Profile:   en16931" in out
        assert "Seller:    Atelier Lumière SAS FR12345678901" in out
        assert "Lines:     2" in out
        assert "Total:   EUR 214.20" in out
        assert "VAT breakdown:" in out
        assert "19%" in out


class TestBuild:
    def test_writes_invoice(self, tmp_path, scenario_a_dict, capsys):
        desc = tmp_path / "invoice.yaml"
        desc.write_text(yaml.safe_dump(scenario_a_dict, allow_unicode=True), encoding="utf-8")
        out = tmp_path / "invoice.xml"

        assert run(["build", str(desc), str(out)]) == EXIT_OK
        assert f"Wrote {out}" in capsys.readouterr().out

        invoice = parse_file(out)
        assert invoice.grand_total == Decimal("214.20")
        assert invoice.trade_taxes[0].calculated_amount == Decimal("34.20")

    def test_recomputes_line_totals(self, tmp_path, scenario_a_dict):
        for line in scenario_a_dict["lines"]:
            del line["total"]
        desc = tmp_path / "invoice.yaml"
        desc.write_text(yaml.safe_dump(scenario_a_dict, allow_unicode=True), encoding="utf-8")
        out = tmp_path / "invoice.xml"

        assert run(["build", str(desc), str(out)]) == EXIT_OK
        assert parse_file(out).line_total == Decimal("200.00")

    def test_invalid_not_written(self, tmp_path, scenario_a_dict, capsys):
        scenario_a_dict["seller"]["name"] = ""
        desc = tmp_path / "invoice.yaml"
        desc.write_text(yaml.safe_dump(scenario_a_dict, allow_unicode=True), encoding="utf-8")
        out = tmp_path / "invoice.xml"

        assert run(["build", str(desc), str(out)]) == EXIT_INVALID
        assert "BR-6" in capsys.readouterr().out
        assert not out.exists()

    def test_exemption_reason_from_settings(self, tmp_path):
        config_dir = tmp_path / "config"
        (config_dir / "settings.yaml").write_text(yaml.safe_dump({"exemption_reasons": {"AE": "Autoliquidation"}}))
        desc = tmp_path / "invoice.yaml"
        desc.write_text(
            yaml.safe_dump(
                {
                    "number": "INV-E",
                    "issue_date": "2024-03-15",
                    "currency": "EUR",
                    "specification_id": "urn:cen.eu:en16931:2017",
                    "seller": {"name": "Nordlicht GmbH", "vat_id": "DE123456789", "address": {"city": "Hamburg", "country": "DE"}},
                    "buyer": {"name": "Soleil SA", "vat_id": "FR45678901234", "address": {"city": "Lyon", "country": "FR"}},
                    "lines": [{"id": "1", "name": "Machine part", "quantity": "1", "unit": "C62", "net_price": "100", "tax_category": "AE", "tax_rate": "0"}],
                    "payment_terms": ["Net 30 days"],
                }
            ),
            encoding="utf-8",
        )
        out = tmp_path / "invoice.xml"

        assert run(["build", str(desc), str(out)]) == EXIT_OK
        assert parse_file(out).trade_taxes[0].exemption_reason == "Autoliquidation"

    def test_missing_description(self, tmp_path, capsys):
        assert run(["build", str(tmp_path / "nope.yaml"), str(tmp_path / "out.xml")]) == EXIT_ERROR
        assert "Error (io)" in capsys.readouterr().err

    def test_invalid_yaml(self, tmp_path, capsys):
        desc = tmp_path / "bad.yaml"
        desc.write_text("number: [unclosed\n")
        assert run(["build", str(desc), str(tmp_path / "out.xml")]) == EXIT_ERROR
        assert "Error (parse)" in capsys.readouterr().err

    def test_bad_amount(self, tmp_path, scenario_a_dict, capsys):
        scenario_a_dict["lines"][0]["quantity"] = "one"
        desc = tmp_path / "invoice.yaml"
        desc.write_text(yaml.safe_dump(scenario_a_dict, allow_unicode=True), encoding="utf-8")
        assert run(["build", str(desc), str(tmp_path / "out.xml")]) == EXIT_ERROR
        assert "Error (parse)" in capsys.readouterr().err


class TestMain:
    def test_exit_code(self, invoice_file):
        with patch("sys.argv", ["einvoice", "validate", str(invoice_file)]), pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == EXIT_OK

    def test_usage_exit_code(self):
        with patch("sys.argv", ["einvoice"]), pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == EXIT_ERROR

    def test_setup_logging_level(self, monkeypatch):
        monkeypatch.setenv("EINVOICE_LOG_LEVEL", "debug")
        with patch("einvoice.cli.logging.basicConfig") as mock_config:
            _setup_logging()
        assert mock_config.call_args.kwargs["level"] == logging.DEBUG

    def test_setup_logging_unknown_level(self, monkeypatch):
        monkeypatch.setenv("EINVOICE_LOG_LEVEL", "chatty")
        with patch("einvoice.cli.logging.basicConfig") as mock_config:
            _setup_logging()
        assert mock_config.call_args.kwargs["level"] == logging.WARNING

from __future__ import annotations

import pytest

from einvoice import rules


class TestCatalog:
    @pytest.mark.parametrize(
        "code",
        [
            "BR-1",
            "BR-65",
            "BR-CO-3",
            "BR-CO-27",
            "BR-DEC-01",
            "BR-DEC-28",
            "BR-B-1",
            "BR-O-14",
            "BR-IC-12",
            "BR-DE-1",
            "BR-DE-31",
            "PEPPOL-EN16931-R008",
            "PEPPOL-EN16931-R130",
            "BR-USER-06",
            "UNEXPECTED-TAX-CURRENCY",
            "Check",
        ],
    )
    def test_known_codes(self, code):
        assert rules.get(code).code == code

    @pytest.mark.parametrize("prefix", ["S", "AE", "E", "Z", "G", "IC", "IG", "IP"])
    def test_category_families_complete(self, prefix):
        for n in range(1, 11):
            assert f"BR-{prefix}-{n}" in rules.CATALOG

    def test_fields_are_tuples(self):
        rule = rules.get("BR-CO-10")
        assert rule.fields == ("BT-106", "BT-131")

    def test_decimal_rule_text(self):
        rule = rules.get("BR-DEC-19")
        assert rule.fields == ("BT-116",)
        assert "2" in rule.description

    def test_empty_element_rule_has_no_fields(self):
        assert rules.get("PEPPOL-EN16931-R008").fields == ()

    def test_unknown_code(self):
        with pytest.raises(KeyError):
            rules.get("BR-XX-1")

    def test_rules_are_frozen(self):
        rule = rules.get("BR-2")
        with pytest.raises(AttributeError):
            rule.code = "BR-3"

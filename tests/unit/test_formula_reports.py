"""Tests for formula report calculations."""

from decimal import Decimal

import pytest

from domain.models import AllergenRecord, Formula, FormulaLine, IfraLimit, IngredientRecord
from domain.services.formula_reports import (
    IFRA_CATEGORY_ORDER,
    FormulaReportService,
    ifra_category_description,
    index_allergens,
    index_inci,
)


@pytest.fixture
def service():
    return FormulaReportService()


@pytest.fixture
def ingredients():
    return [
        IngredientRecord(code="MP001", name="Eau", inci="Aqua", supplier="Local"),
        IngredientRecord(code="MP002", name="Glycérine", inci="Glycerin", supplier="Gattefossé"),
        IngredientRecord(code="MP003", name="Parfum lavande", inci="Parfum"),
        IngredientRecord(code="MP004", name="Huile essentielle", inci="Parfum"),
    ]


@pytest.fixture
def formula():
    return Formula(
        name="Lotion",
        total_weight=Decimal("500"),
        lines=(
            FormulaLine(
                phase="1",
                ingredient_code="MP001",
                ingredient_name="Eau",
                percent=Decimal("80"),
                grams=Decimal("400"),
                is_qsp=True,
                price_per_kilo=Decimal("0.50"),
            ),
            FormulaLine(
                phase="1",
                ingredient_code="mp002",
                ingredient_name="Glycérine",
                percent=Decimal("15"),
                grams=Decimal("75"),
                price_per_kilo=Decimal("4"),
            ),
            FormulaLine(
                phase="2",
                ingredient_code="MP003",
                ingredient_name="Parfum lavande",
                percent=Decimal("3"),
                grams=Decimal("15"),
                price_per_kilo=Decimal("60"),
            ),
            FormulaLine(
                phase="2",
                ingredient_code="MP004",
                ingredient_name="Huile essentielle",
                percent=Decimal("2"),
                grams=Decimal("10"),
            ),
        ),
    )


class TestSummary:
    """Test the totals block."""

    def test_summarize(self, service, formula) -> None:
        summary = service.summarize(formula)

        assert summary.total_weight == Decimal("500")
        assert summary.percent_non_qsp == Decimal("20")
        assert summary.qsp_percent == Decimal("80")
        assert summary.total_percent == Decimal("100")
        assert summary.is_over_limit is False
        assert summary.has_qsp is True
        assert [total.phase_key for total in summary.phase_totals] == ["1", "2"]

    def test_cost_per_kilo(self, service, formula) -> None:
        # 0.5*80% + 4*15% + 60*3%, the last line has no price
        assert service.cost_per_kilo(formula.lines) == Decimal("2.8")

    def test_empty_formula(self, service) -> None:
        summary = service.summarize(Formula())

        assert summary.total_percent == Decimal("0")
        assert summary.cost_per_kilo == Decimal("0")
        assert summary.phase_totals == ()


class TestInci:
    """Test the INCI breakdown."""

    def test_groups_by_inci_highest_first(self, service, formula, ingredients) -> None:
        entries = service.inci_breakdown(formula.lines, index_inci(ingredients))

        assert [(entry.inci, entry.percent) for entry in entries] == [
            ("Aqua", Decimal("80")),
            ("Glycerin", Decimal("15")),
            ("Parfum", Decimal("5")),
        ]

    def test_lines_without_inci_are_left_out(self, service, formula) -> None:
        assert service.inci_breakdown(formula.lines, {"MP001": "Aqua"})[0].inci == "Aqua"
        assert len(service.inci_breakdown(formula.lines, {"MP001": "Aqua"})) == 1


class TestAllergens:
    """Test the allergen breakdown."""

    def test_concentration_in_finished_product(self, service, formula) -> None:
        records = [
            AllergenRecord("MP003", "Linalool", Decimal("30")),
            AllergenRecord("MP004", "Linalool", Decimal("10")),
            AllergenRecord("MP004", "Limonene", Decimal("50")),
        ]

        entries = service.allergen_breakdown(formula.lines, index_allergens(records))

        assert [entry.allergen_name for entry in entries] == ["Linalool", "Limonene"]
        linalool = entries[0]
        assert linalool.total_percent == Decimal("1.1")
        assert [source.material_name for source in linalool.sources] == [
            "Parfum lavande",
            "Huile essentielle",
        ]
        assert entries[1].total_percent == Decimal("1")

    def test_qsp_line_is_not_scanned(self, service, formula) -> None:
        records = [AllergenRecord("MP001", "Citral", Decimal("1"))]

        assert service.allergen_breakdown(formula.lines, index_allergens(records)) == []


class TestIfra:
    """Test the IFRA certificate."""

    def test_most_restrictive_limit_per_category(self, service, formula) -> None:
        limits = [
            IfraLimit("4", "MP003", Decimal("2.5")),
            IfraLimit("4", "MP004", Decimal("1.2")),
            IfraLimit("5a", "MP003", Decimal("0.8")),
            IfraLimit("4", "UNUSED", Decimal("0.01")),
        ]

        certificate = service.ifra_certificate(formula.lines, limits)
        rows = {row.category: row for row in certificate.rows}

        assert [row.category for row in certificate.rows] == list(IFRA_CATEGORY_ORDER)
        assert rows["4"].max_percent == Decimal("1.2")
        assert rows["5A"].max_percent == Decimal("0.8")
        assert rows["1"].max_percent is None
        assert rows["4"].description == ifra_category_description("4")
        assert certificate.formula_codes == ("mp002", "MP003", "MP004")
        assert certificate.matched_codes == ("MP003", "MP004")
        assert certificate.has_data is True

    def test_without_matches(self, service, formula) -> None:
        certificate = service.ifra_certificate(formula.lines, [])

        assert certificate.has_data is False
        assert all(row.max_percent is None for row in certificate.rows)


class TestBuildReport:
    """Test the assembled report."""

    def test_build_report(self, service, formula, ingredients) -> None:
        report = service.build_report(
            formula,
            ingredients=ingredients,
            allergens=[AllergenRecord("MP003", "Linalool", Decimal("30"))],
            ifra_limits=[IfraLimit("4", "MP003", Decimal("2"))],
        )

        assert report.formula is formula
        assert report.summary.total_percent == Decimal("100")
        assert report.inci[0].inci == "Aqua"
        assert report.allergens[0].total_percent == Decimal("0.9")
        assert report.ifra.has_data is True
        assert report.inci_for("MP002") == "Glycerin"
        assert report.supplier_for("mp002") == "Gattefossé"
        assert report.supplier_for("MP003") == ""

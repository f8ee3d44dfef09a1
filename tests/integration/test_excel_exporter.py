"""Integration tests for the Excel exporter."""

from datetime import datetime, timezone
from decimal import Decimal

import openpyxl
import pytest

from domain.exceptions import ExportError
from domain.models import (
    AllergenRecord,
    Formula,
    FormulaLine,
    FormulaNotes,
    IfraLimit,
    IngredientRecord,
    StabilityTracking,
)
from domain.services.formula_reports import FormulaReportService
from infrastructure.persistence.excel_exporter import FORMULA_HEADERS, ExcelExporter


@pytest.fixture
def report():
    formula = Formula(
        name="Brume parfumée",
        version="3",
        formulator="Camille",
        total_weight=Decimal("200"),
        notes=FormulaNotes(odour="Lavande", conclusion="Validée"),
        stability=StabilityTracking.start(datetime(2024, 6, 3, tzinfo=timezone.utc)).with_day_notes(
            "J30", "Couleur stable"
        ),
        lines=(
            FormulaLine(
                phase="1",
                ingredient_code="MP001",
                ingredient_name="Eau",
                percent=Decimal("95"),
                grams=Decimal("190"),
                is_qsp=True,
                price_per_kilo=Decimal("1"),
            ),
            FormulaLine(
                phase="2",
                ingredient_code="MP003",
                ingredient_name="Parfum lavande",
                percent=Decimal("5"),
                grams=Decimal("10"),
                price_per_kilo=Decimal("60"),
            ),
        ),
    )
    return FormulaReportService().build_report(
        formula,
        ingredients=[
            IngredientRecord(code="MP001", name="Eau", inci="Aqua", supplier="Local"),
            IngredientRecord(code="MP003", name="Parfum lavande", inci="Parfum"),
        ],
        allergens=[AllergenRecord("MP003", "Linalool", Decimal("20"))],
        ifra_limits=[IfraLimit("4", "MP003", Decimal("3.5"))],
    )


@pytest.fixture
def exported(report, tmp_path):
    path = tmp_path / "brume.xlsx"
    ExcelExporter().export_formula(report, path)
    return openpyxl.load_workbook(path)


class TestExcelExporter:
    """Test workbook contents."""

    def test_sheets(self, exported) -> None:
        assert exported.sheetnames == [
            "Formule",
            "Totaux par phase",
            "Résumé",
            "INCI",
            "Allergènes",
            "IFRA",
        ]

    def test_formula_sheet(self, exported) -> None:
        rows = list(exported["Formule"].iter_rows(values_only=True))

        assert list(rows[0]) == FORMULA_HEADERS
        assert rows[1][:7] == ("1", "MP001", "Eau", "Aqua", "Local", 95, 190)
        assert rows[1][9] == "Oui"
        assert rows[2][1] == "MP003"
        assert rows[2][8] == 3
        assert rows[3][0] == "TOTAL"
        assert rows[3][5] == 100
        assert rows[3][8] == pytest.approx(3.95)

    def test_qsp_row_is_highlighted(self, exported) -> None:
        sheet = exported["Formule"]

        assert sheet.cell(2, 1).fill.start_color.rgb.endswith("FCE7F3")
        assert sheet.cell(1, 1).font.bold is True

    def test_phase_totals_sheet(self, exported) -> None:
        rows = list(exported["Totaux par phase"].iter_rows(values_only=True))

        assert rows[1] == ("Phase 1", 1, 95, 190)
        assert rows[2] == ("Phase 2", 1, 5, 10)

    def test_summary_sheet(self, exported) -> None:
        values = dict(exported["Résumé"].iter_rows(values_only=True))

        assert values["Formule"] == "Brume parfumée v3"
        assert values["QSP (%)"] == 95
        assert values["Dépassement 100 %"] == "Non"
        assert values["Odeur"] == "Lavande"
        assert values["Début stabilité"] == "03/06/2024"
        assert values["Stabilité J30"] == "Couleur stable"

    def test_regulatory_sheets(self, exported) -> None:
        inci = list(exported["INCI"].iter_rows(values_only=True))
        allergens = list(exported["Allergènes"].iter_rows(values_only=True))
        ifra = {row[0]: row for row in exported["IFRA"].iter_rows(values_only=True) if row[0]}

        assert inci[1] == ("Aqua", 95)
        assert allergens[1][:2] == ("Linalool", 1)
        assert allergens[2][2] == "Parfum lavande"
        assert ifra["4"][2] == 3.5
        assert ifra["1"][2] == "Non limité"
        assert ifra["Matières couvertes"][1] == "MP003"

    def test_empty_report(self, tmp_path) -> None:
        path = tmp_path / "vide.xlsx"
        ExcelExporter().export_formula(FormulaReportService().build_report(Formula()), path)

        workbook = openpyxl.load_workbook(path)
        assert workbook["Allergènes"].cell(2, 1).value == "Aucun allergène déclaré"
        assert "Protocole" not in dict(workbook["Résumé"].iter_rows(values_only=True))
        assert "Début stabilité" not in dict(workbook["Résumé"].iter_rows(values_only=True))

    def test_failure_is_wrapped(self, report, tmp_path) -> None:
        with pytest.raises(ExportError, match="Failed to export"):
            ExcelExporter().export_formula(report, tmp_path / "missing" / "out.xlsx")

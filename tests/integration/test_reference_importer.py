"""Integration tests for the reference spreadsheet importer."""

from decimal import Decimal

import openpyxl
import pytest

from domain.exceptions import SpreadsheetImportError
from infrastructure.persistence.reference_importer import ReferenceImportService


def blank(count):
    return [None] * count


def ingredient_rows():
    return [
        ["Code MP", "Nom commercial", "INCI", "Fournisseur", "Catégorie", "Prix €/kg", "En stock", "N° CAS"],
        ["MP001", "Eau déminéralisée", "Aqua", "Local", "Solvant", 0.5, "oui", "7732-18-5"],
        ["MP002", "Glycérine ancienne", "Glycerin", None, None, None, None, None],
        ["MP003", "Parfum lavande", "Parfum", "Expressions", "Parfum", 58.0, "Oui", None],
        [None, None, None, None, None, None, None, None],
        ["MP004", None, "Tocopherol", None, None, None, None, None],
        ["mp002", "Glycérine végétale", "Glycerin", "Gattefossé", "Humectant", "4,20", "non", "56-81-5"],
    ]


def allergen_rows():
    return [
        ["Allergènes 81"] + blank(7),
        ["Code", "Nom"] + blank(4) + ["Linalool", "Limonene"],
        ["En % dans la matière"] + blank(7),
        ["Mise à jour 2024"] + blank(7),
        ["Source fournisseur"] + blank(7),
        ["MP003", "Parfum lavande"] + blank(4) + [32.5, "1,2"],
        ["12"] + blank(7),
        ["MP999", "Inconnu"] + blank(4) + [1, 1],
        ["MP001", "Eau"] + blank(4) + [0, None],
    ]


def ifra_rows():
    return [
        ["Limites IFRA"] + blank(7),
        ["Code"] + blank(5) + ["1", "4"],
        ["Catégorie"] + blank(5) + ["Lèvres", "Parfums fins"],
        ["MP003"] + blank(5) + [0.4, "2,5"],
        ["MP002"] + blank(5) + [None, "non"],
    ]


def toxicology_rows():
    return [
        ["Code", "Test", "Résultat", "Date", "Notes"],
        ["MP003", "HRIPT", "Négatif", "2024-02-01", "50 volontaires"],
        ["MP001", None, "Négatif", None, None],
    ]


@pytest.fixture
def importer():
    return ReferenceImportService()


@pytest.fixture
def sheets():
    return {
        "Liste MP": ingredient_rows(),
        "Allergènes 81": allergen_rows(),
        "IFRA 51": ifra_rows(),
        "Tests toxico": toxicology_rows(),
    }


class TestParseSheets:
    """Test parsing already-loaded sheets."""

    def test_detects_sheets(self, importer, sheets) -> None:
        result = importer.parse_sheets(sheets)

        assert result.sheets == {
            "ingredients": "Liste MP",
            "allergens": "Allergènes 81",
            "toxicology_tests": "Tests toxico",
            "ifra_limits": "IFRA 51",
        }

    def test_ingredients(self, importer, sheets) -> None:
        ingredients = importer.parse_sheets(sheets).data.ingredients

        assert [r.code for r in ingredients] == ["MP001", "mp002", "MP003"]
        water, glycerin, perfume = ingredients
        assert water.name == "Eau déminéralisée"
        assert water.inci == "Aqua"
        assert water.cas_number == "7732-18-5"
        assert water.in_stock is True
        assert water.price_per_kilo == Decimal("0.5")
        assert glycerin.price_per_kilo == Decimal("4.20")
        assert glycerin.supplier == "Gattefossé"
        assert glycerin.in_stock is False
        assert perfume.category == "Parfum"
        assert perfume.price_per_kilo == Decimal("58")

    def test_skipped_rows_are_reported(self, importer, sheets) -> None:
        result = importer.parse_sheets(sheets)

        reasons = {(s.sheet, s.row, s.reason) for s in result.skipped}
        assert ("Liste MP", 6, "code ou nom manquant") in reasons
        assert ("Liste MP", 3, "code en double (MP002)") in reasons
        assert ("Allergènes 81", 8, "code inconnu (MP999)") in reasons
        assert ("Tests toxico", 3, "code ou test manquant") in reasons
        assert "Liste MP ligne 6: code ou nom manquant" in result.warnings

    def test_allergens(self, importer, sheets) -> None:
        allergens = importer.parse_sheets(sheets).data.allergens

        assert [(r.ingredient_code, r.allergen_name, r.percentage) for r in allergens] == [
            ("MP003", "Linalool", Decimal("32.5")),
            ("MP003", "Limonene", Decimal("1.2")),
        ]

    def test_ifra_limits(self, importer, sheets) -> None:
        limits = importer.parse_sheets(sheets).data.ifra_limits

        assert [(r.category_number, r.ingredient_code, r.limit_percent) for r in limits] == [
            ("1", "MP003", Decimal("0.4")),
            ("4", "MP003", Decimal("2.5")),
        ]
        assert limits[1].description == "Parfums fins"

    def test_toxicology(self, importer, sheets) -> None:
        tests = importer.parse_sheets(sheets).data.toxicology_tests

        assert len(tests) == 1
        assert tests[0].test_name == "HRIPT"
        assert tests[0].test_result == "Négatif"
        assert tests[0].notes == "50 volontaires"

    def test_optional_sheets_may_be_missing(self, importer) -> None:
        result = importer.parse_sheets({"Matières premières": ingredient_rows()})

        assert len(result.data.ingredients) == 3
        assert result.data.allergens == []
        assert result.data.ifra_limits == []

    def test_name_column_fallback(self, importer) -> None:
        rows = [["Code", "Désignation INCI", "Matière première"], ["A1", "Aqua", "Eau"]]

        ingredients = importer.parse_sheets({"Liste": rows}).data.ingredients

        assert ingredients[0].name == "Eau"

    def test_missing_ingredient_sheet(self, importer) -> None:
        with pytest.raises(SpreadsheetImportError) as excinfo:
            importer.parse_sheets({"Feuil1": [["a"], ["b"]]})

        assert excinfo.value.title == "Feuille introuvable"
        assert "Feuil1" in excinfo.value.message

    def test_missing_code_column(self, importer) -> None:
        with pytest.raises(SpreadsheetImportError) as excinfo:
            importer.parse_sheets({"Liste": [["Nom", "INCI"], ["Eau", "Aqua"]]})

        assert excinfo.value.title == "Colonnes manquantes"

    def test_empty_ingredient_sheet(self, importer) -> None:
        with pytest.raises(SpreadsheetImportError) as excinfo:
            importer.parse_sheets({"Liste": [["Code", "Nom"]]})

        assert excinfo.value.title == "Sans données"

    def test_no_valid_ingredient(self, importer) -> None:
        with pytest.raises(SpreadsheetImportError) as excinfo:
            importer.parse_sheets({"Liste": [["Code", "Nom"], ["MP1", None]]})

        assert excinfo.value.title == "Sans matières premières"

    def test_duplicate_code_keeps_last_row(self, importer) -> None:
        rows = [["Code", "Nom"], ["MP1", "Premier"], ["MP2", "Autre"], ["mp1", "Dernier"]]

        result = importer.parse_sheets({"Liste": rows})

        assert [r.name for r in result.data.ingredients] == ["Dernier", "Autre"]
        assert [(s.row, s.reason) for s in result.skipped] == [(2, "code en double (MP1)")]

    def test_allergen_codes_match_case_insensitively(self, importer) -> None:
        allergens = allergen_rows()[:5] + [["mp003", "Parfum"] + blank(4) + [10, None]]

        result = importer.parse_sheets({"Liste": ingredient_rows(), "Allergènes": allergens})

        assert [(r.ingredient_code, r.allergen_name) for r in result.data.allergens] == [
            ("mp003", "Linalool")
        ]
        assert not any(s.sheet == "Allergènes" for s in result.skipped)


class TestLoadWorkbook:
    """Test reading an actual .xlsx file."""

    def test_load_workbook(self, importer, tmp_path) -> None:
        workbook = openpyxl.Workbook()
        liste = workbook.active
        liste.title = "Liste"
        for row in ingredient_rows()[:4]:
            liste.append(row)
        allergens = workbook.create_sheet("Allergènes")
        for row in allergen_rows()[:6]:
            allergens.append(row)
        path = tmp_path / "reference.xlsx"
        workbook.save(path)

        result = importer.load_workbook(str(path))

        assert [r.code for r in result.data.ingredients] == ["MP001", "MP002", "MP003"]
        assert result.data.ingredients[0].price_per_kilo == Decimal("0.5")
        assert {r.allergen_name for r in result.data.allergens} == {"Linalool", "Limonene"}
        assert result.skipped == []

    def test_unreadable_file(self, importer, tmp_path) -> None:
        path = tmp_path / "broken.xlsx"
        path.write_text("not a workbook", encoding="utf-8")

        with pytest.raises(SpreadsheetImportError) as excinfo:
            importer.load_workbook(str(path))

        assert excinfo.value.severity == "critical"
        assert "broken.xlsx" in excinfo.value.message

    def test_normalize_label(self, importer) -> None:
        assert importer.normalize_label("  Matières_Premières ") == "matieres premieres"
        assert importer.normalize_label(None) == ""

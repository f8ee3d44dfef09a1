"""Integration tests for the reference data repository."""

from decimal import Decimal

import pytest

from domain.exceptions import InvalidFormulaFileError
from domain.models import AllergenRecord, IfraLimit, IngredientRecord, ToxicologyTest
from infrastructure.persistence.reference_repository import (
    IMPORT_MODE_MERGE,
    IMPORT_MODE_REPLACE,
    JSONReferenceRepository,
    ReferenceData,
)


@pytest.fixture
def repository(tmp_path):
    return JSONReferenceRepository(base_directory=str(tmp_path))


def reference_data(*codes, allergen="Linalool") -> ReferenceData:
    return ReferenceData(
        ingredients=[
            IngredientRecord(code=code, name=f"Matière {code}", inci=f"INCI {code}") for code in codes
        ],
        allergens=[AllergenRecord(code, allergen, Decimal("1.5")) for code in codes],
        ifra_limits=[IfraLimit("4", code, Decimal("2"), "Parfums fins") for code in codes],
        toxicology_tests=[ToxicologyTest(code, "HRIPT", "Négatif", "2024-03-01") for code in codes],
    )


class TestJSONReferenceRepository:
    """Test reference data persistence."""

    def test_empty_when_nothing_imported(self, repository) -> None:
        assert repository.load("labo-1").counts() == {
            "ingredients": 0,
            "allergens": 0,
            "ifra_limits": 0,
            "toxicology_tests": 0,
        }

    def test_import_and_load(self, repository) -> None:
        counts = repository.apply_import("labo-1", reference_data("MP1", "MP2"))

        loaded = repository.load("labo-1")
        assert counts["ingredients"] == 2
        assert counts["allergens"] == 2
        assert [r.code for r in loaded.ingredients] == ["MP1", "MP2"]
        assert loaded.allergens[0].percentage == Decimal("1.5")
        assert loaded.ifra_limits[0].description == "Parfums fins"
        assert loaded.toxicology_tests[0].test_result == "Négatif"

    def test_merge_upserts_and_replaces_child_rows(self, repository) -> None:
        repository.apply_import("labo-1", reference_data("MP1", "MP2"))

        repository.apply_import(
            "labo-1", reference_data("mp2", "MP3", allergen="Limonene"), IMPORT_MODE_MERGE
        )

        loaded = repository.load("labo-1")
        assert sorted(r.code_key for r in loaded.ingredients) == ["mp1", "mp2", "mp3"]
        allergens = {(r.ingredient_code.lower(), r.allergen_name) for r in loaded.allergens}
        assert allergens == {("mp1", "Linalool"), ("mp2", "Limonene"), ("mp3", "Limonene")}

    def test_replace_purges_previous_data(self, repository) -> None:
        repository.apply_import("labo-1", reference_data("MP1", "MP2"))

        repository.apply_import("labo-1", reference_data("MP9"), IMPORT_MODE_REPLACE)

        loaded = repository.load("labo-1")
        assert [r.code for r in loaded.ingredients] == ["MP9"]
        assert len(loaded.allergens) == 1

    def test_duplicate_codes_last_wins(self, repository) -> None:
        incoming = ReferenceData(
            ingredients=[
                IngredientRecord(code="MP1", name="Premier"),
                IngredientRecord(code="mp1", name="Second"),
            ]
        )

        counts = repository.apply_import("labo-1", incoming)

        assert counts["ingredients"] == 1
        assert repository.find_ingredient("labo-1", "MP1").name == "Second"

    def test_invalid_mode(self, repository) -> None:
        with pytest.raises(ValueError, match="Invalid import mode"):
            repository.apply_import("labo-1", ReferenceData(), "append")

    def test_organizations_are_isolated(self, repository) -> None:
        repository.apply_import("labo-1", reference_data("MP1"))

        assert repository.find_ingredient("labo-2", "MP1") is None
        assert repository.find_ingredient("labo-1", " mp1 ").code == "MP1"

    def test_search_ingredients(self, repository) -> None:
        repository.apply_import(
            "labo-1",
            ReferenceData(
                ingredients=[
                    IngredientRecord(code="MP1", name="Eau de rose", inci="Rosa Damascena Flower Water"),
                    IngredientRecord(code="MP2", name="Glycérine", inci="Glycerin"),
                    IngredientRecord(code="MP3", name="Hydrolat de rose", inci="Aqua"),
                ]
            ),
        )

        assert [r.code for r in repository.search_ingredients("labo-1", "rose")] == ["MP1", "MP3"]
        assert [r.code for r in repository.search_ingredients("labo-1", "GLYC")] == ["MP2"]
        assert len(repository.search_ingredients("labo-1", "", limit=2)) == 2

    def test_malformed_file(self, repository, tmp_path) -> None:
        repository.apply_import("labo-1", reference_data("MP1"))
        (tmp_path / "labo-1" / "reference_data.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(InvalidFormulaFileError):
            repository.load("labo-1")

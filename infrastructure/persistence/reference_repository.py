"""JSON persistence for reference data.

Ingredients, allergens, IFRA limits and toxicology tests imported from
spreadsheets, kept in one JSON document per organization.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from config.constants import REFERENCE_DATA_FILE
from domain.exceptions import InvalidFormulaFileError
from domain.models import (
    AllergenRecord,
    IfraLimit,
    IngredientRecord,
    ToxicologyTest,
    normalize_code,
)
from infrastructure.persistence.json_repository import organization_directory, write_json_atomic

IMPORT_MODE_MERGE = "merge"
IMPORT_MODE_REPLACE = "replace"


@dataclass
class ReferenceData:
    """All reference tables of one organization."""

    ingredients: List[IngredientRecord] = field(default_factory=list)
    allergens: List[AllergenRecord] = field(default_factory=list)
    ifra_limits: List[IfraLimit] = field(default_factory=list)
    toxicology_tests: List[ToxicologyTest] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            "ingredients": len(self.ingredients),
            "allergens": len(self.allergens),
            "ifra_limits": len(self.ifra_limits),
            "toxicology_tests": len(self.toxicology_tests),
        }


def _replace_for_codes(existing: Iterable[Any], incoming: List[Any]) -> List[Any]:
    """Drop existing rows for the incoming codes, then append the incoming rows."""
    codes = {normalize_code(row.ingredient_code) for row in incoming}
    kept = [row for row in existing if normalize_code(row.ingredient_code) not in codes]
    return kept + list(incoming)


class JSONReferenceRepository:
    """Tenant-scoped store for imported reference data."""

    def __init__(self, base_directory: str = "saves") -> None:
        self._base_dir = Path(base_directory)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def load(self, organization_id: str) -> ReferenceData:
        """Load reference data (empty when nothing was imported yet)."""
        file_path = self._file_path(organization_id)
        if not file_path.exists():
            return ReferenceData()
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return self._dict_to_reference(data)
        except (json.JSONDecodeError, KeyError, ValueError, TypeError, ArithmeticError) as exc:
            raise InvalidFormulaFileError(
                f"Invalid reference data file: {file_path.name}"
            ) from exc

    def apply_import(
        self,
        organization_id: str,
        incoming: ReferenceData,
        mode: str = IMPORT_MODE_MERGE,
    ) -> Dict[str, int]:
        """Store imported records.

        Args:
            organization_id: Tenant
            incoming: Records parsed from a spreadsheet
            mode: ``merge`` upserts ingredients by code and replaces child
                rows of the imported codes; ``replace`` purges everything first

        Returns:
            Number of records written per table
        """
        if mode not in (IMPORT_MODE_MERGE, IMPORT_MODE_REPLACE):
            raise ValueError(f"Invalid import mode: {mode}")

        current = ReferenceData() if mode == IMPORT_MODE_REPLACE else self.load(organization_id)

        # Last record wins for duplicated codes.
        imported: Dict[str, IngredientRecord] = {}
        for record in incoming.ingredients:
            imported[record.code_key] = record
        by_code: Dict[str, IngredientRecord] = {
            record.code_key: record for record in current.ingredients
        }
        by_code.update(imported)

        merged = ReferenceData(
            ingredients=list(by_code.values()),
            allergens=_replace_for_codes(current.allergens, incoming.allergens),
            ifra_limits=_replace_for_codes(current.ifra_limits, incoming.ifra_limits),
            toxicology_tests=_replace_for_codes(
                current.toxicology_tests, incoming.toxicology_tests
            ),
        )
        write_json_atomic(self._file_path(organization_id), self._reference_to_dict(merged))
        counts = incoming.counts()
        counts["ingredients"] = len(imported)
        logging.info(
            "Reference import org=%s mode=%s counts=%s", organization_id, mode, counts
        )
        return counts

    def find_ingredient(self, organization_id: str, code: str) -> Optional[IngredientRecord]:
        key = normalize_code(code)
        for record in self.load(organization_id).ingredients:
            if record.code_key == key:
                return record
        return None

    def search_ingredients(
        self, organization_id: str, query: str, limit: int = 20
    ) -> List[IngredientRecord]:
        """Ingredients whose code, name or INCI contains the query."""
        needle = query.strip().lower()
        results = []
        for record in self.load(organization_id).ingredients:
            haystack = f"{record.code} {record.name} {record.inci}".lower()
            if not needle or needle in haystack:
                results.append(record)
            if len(results) >= limit:
                break
        return results

    def _file_path(self, organization_id: str) -> Path:
        return organization_directory(self._base_dir, organization_id) / REFERENCE_DATA_FILE

    def _reference_to_dict(self, data: ReferenceData) -> Dict[str, Any]:
        return {
            "ingredients": [
                {
                    "code": r.code,
                    "name": r.name,
                    "supplier": r.supplier,
                    "inci": r.inci,
                    "category": r.category,
                    "price_per_kilo": str(r.price_per_kilo) if r.price_per_kilo is not None else None,
                    "in_stock": r.in_stock,
                    "cas_number": r.cas_number,
                    "functions": r.functions,
                    "impurities": r.impurities,
                }
                for r in data.ingredients
            ],
            "allergens": [
                {
                    "ingredient_code": r.ingredient_code,
                    "allergen_name": r.allergen_name,
                    "percentage": str(r.percentage),
                }
                for r in data.allergens
            ],
            "ifra_limits": [
                {
                    "category_number": r.category_number,
                    "description": r.description,
                    "ingredient_code": r.ingredient_code,
                    "limit_percent": str(r.limit_percent),
                }
                for r in data.ifra_limits
            ],
            "toxicology_tests": [
                {
                    "ingredient_code": r.ingredient_code,
                    "test_name": r.test_name,
                    "test_result": r.test_result,
                    "test_date": r.test_date,
                    "notes": r.notes,
                }
                for r in data.toxicology_tests
            ],
        }

    def _dict_to_reference(self, data: Dict[str, Any]) -> ReferenceData:
        return ReferenceData(
            ingredients=[
                IngredientRecord(
                    code=r["code"],
                    name=r["name"],
                    supplier=r.get("supplier") or "",
                    inci=r.get("inci") or "",
                    category=r.get("category") or "",
                    price_per_kilo=(
                        Decimal(str(r["price_per_kilo"]))
                        if r.get("price_per_kilo") is not None
                        else None
                    ),
                    in_stock=bool(r.get("in_stock", False)),
                    cas_number=r.get("cas_number") or "",
                    functions=r.get("functions") or "",
                    impurities=r.get("impurities") or "",
                )
                for r in data.get("ingredients", [])
            ],
            allergens=[
                AllergenRecord(
                    ingredient_code=r["ingredient_code"],
                    allergen_name=r["allergen_name"],
                    percentage=Decimal(str(r["percentage"])),
                )
                for r in data.get("allergens", [])
            ],
            ifra_limits=[
                IfraLimit(
                    category_number=r["category_number"],
                    description=r.get("description") or "",
                    ingredient_code=r["ingredient_code"],
                    limit_percent=Decimal(str(r["limit_percent"])),
                )
                for r in data.get("ifra_limits", [])
            ],
            toxicology_tests=[
                ToxicologyTest(
                    ingredient_code=r["ingredient_code"],
                    test_name=r["test_name"],
                    test_result=r.get("test_result") or "",
                    test_date=r.get("test_date") or "",
                    notes=r.get("notes") or "",
                )
                for r in data.get("toxicology_tests", [])
            ],
        )

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd

from domain.exceptions import SpreadsheetImportError
from domain.models import (
    AllergenRecord,
    IfraLimit,
    IngredientRecord,
    ToxicologyTest,
    normalize_code,
)
from domain.services.number_parser import parse_user_number
from infrastructure.persistence.reference_repository import ReferenceData

Row = List[Any]

# "Allergènes 81" layout (0-based): names on row 2, code in A, values from G, data from row 6.
ALLERGEN_NAMES_ROW = 1
ALLERGEN_CODE_COLUMN = 0
ALLERGEN_FIRST_COLUMN = 6
ALLERGEN_FIRST_DATA_ROW = 5

# IFRA layout (0-based): categories on row 2, descriptions on row 3, codes in A from row 4.
IFRA_CATEGORIES_ROW = 1
IFRA_DESCRIPTIONS_ROW = 2
IFRA_FIRST_DATA_ROW = 3
IFRA_FIRST_COLUMN = 6

_TRUE_VALUES = {"oui", "yes", "true", "1", "o"}
_INCI_HEADER = re.compile(r"\binci\b")


@dataclass(frozen=True)
class SkippedRow:
    sheet: str
    row: int
    reason: str


@dataclass
class ImportResult:
    """Records parsed from a workbook, plus the rows that were ignored."""

    data: ReferenceData
    skipped: List[SkippedRow] = field(default_factory=list)
    sheets: Dict[str, str] = field(default_factory=dict)

    @property
    def warnings(self) -> List[str]:
        return [f"{s.sheet} ligne {s.row}: {s.reason}" for s in self.skipped]


class ReferenceImportService:
    """Parse the organization's reference workbook (ingredients, allergens, IFRA, tox)."""

    INGREDIENT_SHEETS = ("liste", "liste mp", "matieres premieres", "donnees")
    INGREDIENT_SHEET_FRAGMENTS = ("liste", "matiere", "donnee")
    ALLERGEN_SHEETS = ("allergenes 81", "allergenes")
    ALLERGEN_SHEET_FRAGMENTS = ("allerg",)
    TOXICOLOGY_SHEETS = ("tests toxico", "tests toxico.")
    TOXICOLOGY_SHEET_FRAGMENTS = ("toxico",)
    IFRA_SHEETS = ("ifra",)
    IFRA_SHEET_FRAGMENTS = ("ifra",)

    def load_workbook(self, path: str) -> ImportResult:
        """Read every supported sheet of an ``.xlsx`` file.

        Raises:
            SpreadsheetImportError: If the file cannot be read, has no
                ingredient sheet, or the ingredient sheet has no valid rows
        """
        try:
            frames = pd.read_excel(path, sheet_name=None, header=None, dtype=object)
        except Exception as exc:  # noqa: BLE001
            raise SpreadsheetImportError(
                "Erreur d'import",
                f"Impossible de lire le fichier {Path(path).name}:\n{exc}",
                severity="critical",
            ) from exc

        sheets = {name: self._frame_rows(frame) for name, frame in frames.items()}
        return self.parse_sheets(sheets)

    def parse_sheets(self, sheets: Dict[str, List[Row]]) -> ImportResult:
        """Parse already-loaded sheets (sheet name -> rows of cell values)."""
        result = ImportResult(data=ReferenceData())

        ingredient_sheet = self._find_sheet(
            sheets, self.INGREDIENT_SHEETS, self.INGREDIENT_SHEET_FRAGMENTS
        )
        if ingredient_sheet is None:
            present = ", ".join(sheets) or "(aucune)"
            raise SpreadsheetImportError(
                "Feuille introuvable",
                f"Feuille des matières introuvable. Feuilles présentes : {present}. "
                'Renommez une feuille "Liste" ou "Matières premières".',
            )
        result.sheets["ingredients"] = ingredient_sheet
        result.data.ingredients = self._parse_ingredients(
            ingredient_sheet, sheets[ingredient_sheet], result.skipped
        )
        known_codes = {record.code_key for record in result.data.ingredients}

        allergen_sheet = self._find_sheet(
            sheets, self.ALLERGEN_SHEETS, self.ALLERGEN_SHEET_FRAGMENTS
        )
        if allergen_sheet is not None:
            result.sheets["allergens"] = allergen_sheet
            result.data.allergens = self._parse_allergens(
                allergen_sheet, sheets[allergen_sheet], known_codes, result.skipped
            )

        tox_sheet = self._find_sheet(
            sheets, self.TOXICOLOGY_SHEETS, self.TOXICOLOGY_SHEET_FRAGMENTS
        )
        if tox_sheet is not None:
            result.sheets["toxicology_tests"] = tox_sheet
            result.data.toxicology_tests = self._parse_toxicology(
                tox_sheet, sheets[tox_sheet], result.skipped
            )

        ifra_sheet = self._find_sheet(sheets, self.IFRA_SHEETS, self.IFRA_SHEET_FRAGMENTS)
        if ifra_sheet is not None:
            result.sheets["ifra_limits"] = ifra_sheet
            result.data.ifra_limits = self._parse_ifra(ifra_sheet, sheets[ifra_sheet])

        return result

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def _parse_ingredients(
        self, sheet: str, rows: List[Row], skipped: List[SkippedRow]
    ) -> List[IngredientRecord]:
        if len(rows) < 2:
            raise SpreadsheetImportError(
                "Sans données",
                "Feuille des matières vide ou mal formatée (il faut au moins une "
                "ligne d'en-tête et une ligne de données).",
            )

        headers = [self.normalize_label(h) for h in rows[0]]

        def find(predicate: Callable[[str], bool]) -> int:
            return next((i for i, h in enumerate(headers) if predicate(h)), -1)

        code_idx = find(lambda h: "code" in h)
        if code_idx < 0:
            raise SpreadsheetImportError(
                "Colonnes manquantes",
                'La feuille des matières doit contenir une colonne "Code".',
            )
        name_idx = find(
            lambda h: any(k in h for k in ("nom", "designation", "libelle"))
            and not _INCI_HEADER.search(h)
        )
        if name_idx < 0:
            name_idx = find(lambda h: "matiere" in h and "premiere" in h)
        if name_idx < 0:
            name_idx = 1 if code_idx == 0 else 0

        columns = {
            "supplier": find(lambda h: "fournisseur" in h),
            "inci": find(lambda h: bool(_INCI_HEADER.search(h))),
            "category": find(lambda h: "categorie" in h),
            "price": find(lambda h: "prix" in h),
            "stock": find(lambda h: "stock" in h),
            "functions": find(lambda h: "fonction" in h),
            "cas": find(lambda h: "cas" in h.split()),
            "impurities": find(lambda h: "impuret" in h),
        }

        records: Dict[str, IngredientRecord] = {}
        row_numbers: Dict[str, int] = {}
        for row_number, row in enumerate(rows[1:], start=2):
            code = self._cell_text(self._cell(row, code_idx))
            name = self._cell_text(self._cell(row, name_idx))
            if not code and not name:
                continue
            if not code or not name:
                skipped.append(SkippedRow(sheet, row_number, "code ou nom manquant"))
                continue
            key = normalize_code(code)
            if key in records:
                # Last row wins; the earlier one is reported.
                skipped.append(
                    SkippedRow(sheet, row_numbers[key], f"code en double ({records[key].code})")
                )
            row_numbers[key] = row_number

            price = parse_user_number(self._cell(row, columns["price"]))
            records[key] = IngredientRecord(
                code=code,
                name=name,
                supplier=self._cell_text(self._cell(row, columns["supplier"])),
                inci=self._cell_text(self._cell(row, columns["inci"])),
                category=self._cell_text(self._cell(row, columns["category"])),
                price_per_kilo=price if price is not None and price >= 0 else None,
                in_stock=self._cell_bool(self._cell(row, columns["stock"])),
                cas_number=self._cell_text(self._cell(row, columns["cas"])),
                functions=self._cell_text(self._cell(row, columns["functions"])),
                impurities=self._cell_text(self._cell(row, columns["impurities"])),
            )

        if not records:
            raise SpreadsheetImportError(
                "Sans matières premières",
                "Aucune matière première trouvée. Vérifiez que la feuille contient une "
                'colonne "Code" et une colonne "Nom" avec des lignes renseignées.',
            )
        return list(records.values())

    def _parse_allergens(
        self,
        sheet: str,
        rows: List[Row],
        known_codes: set[str],
        skipped: List[SkippedRow],
    ) -> List[AllergenRecord]:
        records: List[AllergenRecord] = []
        if len(rows) <= ALLERGEN_FIRST_DATA_ROW:
            return records

        names = rows[ALLERGEN_NAMES_ROW]
        for row_index in range(ALLERGEN_FIRST_DATA_ROW, len(rows)):
            row = rows[row_index]
            code = self._cell_text(self._cell(row, ALLERGEN_CODE_COLUMN))
            # Purely numeric cells in column A are counters, not codes.
            if not code or code.isdigit():
                continue
            if normalize_code(code) not in known_codes:
                skipped.append(
                    SkippedRow(sheet, row_index + 1, f"code inconnu ({code})")
                )
                continue
            for col in range(ALLERGEN_FIRST_COLUMN, max(len(row), len(names))):
                allergen_name = self._cell_text(self._cell(names, col))
                if not allergen_name:
                    continue
                percentage = parse_user_number(self._cell(row, col))
                if percentage is not None and percentage > 0:
                    records.append(
                        AllergenRecord(
                            ingredient_code=code,
                            allergen_name=allergen_name,
                            percentage=percentage,
                        )
                    )
        return records

    def _parse_toxicology(
        self, sheet: str, rows: List[Row], skipped: List[SkippedRow]
    ) -> List[ToxicologyTest]:
        records: List[ToxicologyTest] = []
        if not rows:
            return records

        headers = {self.normalize_label(h): i for i, h in reversed(list(enumerate(rows[0])))}

        def column(*candidates: str) -> int:
            return next((headers[c] for c in candidates if c in headers), -1)

        code_idx = column("code", "ingredient code")
        test_idx = column("test", "test name", "nom du test")
        result_idx = column("resultat", "result", "test result")
        date_idx = column("date", "test date")
        notes_idx = column("notes", "note")

        for row_number, row in enumerate(rows[1:], start=2):
            code = self._cell_text(self._cell(row, code_idx))
            test_name = self._cell_text(self._cell(row, test_idx))
            if not code and not test_name:
                continue
            if not code or not test_name:
                skipped.append(SkippedRow(sheet, row_number, "code ou test manquant"))
                continue
            records.append(
                ToxicologyTest(
                    ingredient_code=code,
                    test_name=test_name,
                    test_result=self._cell_text(self._cell(row, result_idx)),
                    test_date=self._cell_text(self._cell(row, date_idx)),
                    notes=self._cell_text(self._cell(row, notes_idx)),
                )
            )
        return records

    def _parse_ifra(self, sheet: str, rows: List[Row]) -> List[IfraLimit]:
        records: List[IfraLimit] = []
        if len(rows) <= IFRA_FIRST_DATA_ROW:
            return records

        categories = rows[IFRA_CATEGORIES_ROW]
        descriptions = rows[IFRA_DESCRIPTIONS_ROW]
        for row_index in range(IFRA_FIRST_DATA_ROW, len(rows)):
            row = rows[row_index]
            code = self._cell_text(self._cell(row, 0))
            if not code:
                continue
            last_col = max(len(row), len(categories), len(descriptions))
            for col in range(IFRA_FIRST_COLUMN, last_col):
                category = self._cell_text(self._cell(categories, col))
                if not category:
                    continue
                limit = parse_user_number(self._cell(row, col))
                if limit is None or limit < 0:
                    continue
                records.append(
                    IfraLimit(
                        category_number=category,
                        ingredient_code=code,
                        limit_percent=limit,
                        description=self._cell_text(self._cell(descriptions, col)),
                    )
                )
        return records

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_sheet(
        self,
        sheets: Dict[str, List[Row]],
        exact: Sequence[str],
        fragments: Sequence[str],
    ) -> Optional[str]:
        normalized = {name: self.normalize_label(name) for name in sheets}
        for candidate in exact:
            for name, label in normalized.items():
                if label == candidate:
                    return name
        for fragment in fragments:
            for name, label in normalized.items():
                if fragment in label:
                    return name
        return None

    def _frame_rows(self, frame: pd.DataFrame) -> List[Row]:
        return [
            [None if self._is_missing(value) else value for value in row]
            for row in frame.itertuples(index=False, name=None)
        ]

    @staticmethod
    def _is_missing(value: Any) -> bool:
        try:
            return bool(pd.isna(value))
        except (TypeError, ValueError):
            return False

    @staticmethod
    def _cell(row: Row, index: int) -> Any:
        if index < 0 or index >= len(row):
            return None
        return row[index]

    def _cell_text(self, value: Any) -> str:
        if value is None or self._is_missing(value):
            return ""
        if isinstance(value, bool):
            return "oui" if value else "non"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, Decimal):
            return format(value.normalize(), "f")
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return str(value).strip()

    def _cell_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return self._cell_text(value).lower() in _TRUE_VALUES

    def normalize_label(self, label: Any) -> str:
        """Normalize sheet and column labels for loose matching (casefold + strip accents)."""
        if label is None or self._is_missing(label):
            return ""
        text = unicodedata.normalize("NFKD", str(label))
        text = "".join(ch for ch in text if not unicodedata.combining(ch))
        text = text.replace("_", " ").replace("-", " ").replace("°", " ")
        return re.sub(r"\s+", " ", text).strip().lower()

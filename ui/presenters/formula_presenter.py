"""Formula presenter - orchestrates formula use cases for UI.

Handles all formula-related operations:
- Edit lines (phase, percent, grams, QSP flag, ingredient, price)
- Keep the QSP line and phase order balanced
- Phase totals and summary figures
- Lab notes, stability test and production version
- Save/load, version comparison, reference import and Excel export
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from config.constants import (
    DEFAULT_BACKGROUND_COLOR,
    PHASE_BACKGROUND_COLORS,
    QSP_BACKGROUND_COLOR,
)
from config.container import Container
from domain.exceptions import (
    FormulaNotFoundError,
    FormulatorError,
    InvalidFormulaError,
    QspLineEditError,
    SessionError,
    SpreadsheetImportError,
)
from domain.models import (
    STABILITY_DAYS,
    Formula,
    FormulaLine,
    FormulaNotes,
    IngredientRecord,
    StabilityTracking,
)
from domain.services.formula_balancer import (
    parse_total_weight,
    phase_group_key,
    sanitize_phase,
)
from domain.services.formula_reports import FormulaSummary
from domain.services.version_comparison import VersionComparison
from infrastructure.persistence.reference_importer import ImportResult
from infrastructure.persistence.reference_repository import IMPORT_MODE_MERGE

Result = Tuple[bool, Optional[str]]


class FormulaPresenter:
    """Presenter for formula operations.

    Coordinates the balancer and use cases and prepares data for UI display.
    UI should only call presenter methods, not use cases directly.
    """

    def __init__(self, container: Optional[Container] = None) -> None:
        """Initialize presenter.

        Args:
            container: DI container (creates new one if not provided)
        """
        self._container = container if container is not None else Container()
        self._balancer = self._container.formula_balancer
        self._formula: Formula = Formula()

    @property
    def formula(self) -> Formula:
        """Expose the current formula."""
        return self._formula

    @property
    def formula_name(self) -> str:
        return self._formula.name

    @formula_name.setter
    def formula_name(self, value: str) -> None:
        self._formula = self._formula.evolve(name=value or "")

    def set_metadata(self, **fields: Any) -> None:
        """Update header fields (version, formulator, improvement goal)."""
        allowed = {"name", "version", "formulator", "improvement_goal"}
        self._formula = self._formula.evolve(
            **{key: value or "" for key, value in fields.items() if key in allowed}
        )

    def set_notes(self, **fields: Any) -> None:
        """Update lab notes (protocol, aspect, odour, pH...); unknown keys are ignored."""
        notes = self._formula.notes
        values = {key: str(value or "") for key, value in fields.items() if key in FormulaNotes.__dataclass_fields__}
        self._formula = self._formula.evolve(notes=replace(notes, **values))

    # ------------------------------------------------------------------
    # Stability test
    # ------------------------------------------------------------------

    def start_stability(self, now: Optional[datetime] = None) -> None:
        """Start (or restart) the stability test with blank checkpoints."""
        started = StabilityTracking.start(now or datetime.now(timezone.utc))
        self._formula = self._formula.evolve(stability=started)

    def stop_stability(self) -> None:
        self._formula = self._formula.evolve(stability=StabilityTracking())

    def set_stability_notes_safe(self, day: str, notes: str) -> Result:
        try:
            stability = self._formula.stability.with_day_notes(day, notes)
        except ValueError as exc:
            logging.debug("Stability notes rejected for %s: %s", day, exc)
            return False, "stability_not_started"
        self._formula = self._formula.evolve(stability=stability)
        return True, None

    def get_stability_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stability = self._formula.stability
        now = now or datetime.now(timezone.utc)
        return {
            "is_running": stability.is_running,
            "start_date": stability.start_date,
            "elapsed_days": stability.elapsed_days(now),
            "current_day": stability.current_day(now),
            "days": [(day, stability.notes_for(day)) for day in STABILITY_DAYS],
        }

    def new_formula(self) -> None:
        self._formula = Formula()

    # ------------------------------------------------------------------
    # Table rows
    # ------------------------------------------------------------------

    def get_ui_rows(self) -> List[Dict[str, Any]]:
        """Current lines as dicts for the formula table."""
        return [self._line_to_row(i, line) for i, line in enumerate(self._formula.lines)]

    def _line_to_row(self, index: int, line: FormulaLine) -> Dict[str, Any]:
        if line.is_qsp:
            background = QSP_BACKGROUND_COLOR
        else:
            background = PHASE_BACKGROUND_COLORS.get(line.phase, DEFAULT_BACKGROUND_COLOR)
        return {
            "index": index,
            "phase": line.phase,
            "phase_key": phase_group_key(line),
            "ingredient_code": line.ingredient_code,
            "ingredient_name": line.ingredient_name,
            "percent": line.percent,
            "grams": line.grams,
            "price_per_kilo": line.price_per_kilo,
            "cost_per_kilo": line.cost_per_kilo,
            "is_qsp": line.is_qsp,
            "notes": line.notes,
            "stock_indicator": line.stock_indicator,
            "background": background,
            "can_move_up": index > 0,
            "can_move_down": index < self._formula.line_count - 1,
        }

    def get_line_count(self) -> int:
        return self._formula.line_count

    def has_lines(self) -> bool:
        return not self._formula.is_empty()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _apply(self, lines) -> None:
        self._formula = self._formula.with_lines(lines)

    def _index_valid(self, index: int) -> bool:
        return 0 <= index < self._formula.line_count

    def add_line(self, phase: str = "") -> int:
        """Append a blank line; returns its index."""
        lines = self._balancer.add_line(
            self._formula.lines, FormulaLine(phase=sanitize_phase(phase))
        )
        self._apply(lines)
        return len(lines) - 1

    def remove_line_safe(self, index: int) -> Result:
        if not self._index_valid(index):
            return False, "row_invalid"
        self._apply(
            self._balancer.remove_line(self._formula.lines, index, self._formula.total_weight)
        )
        return True, None

    def set_percent_safe(self, index: int, value: Any) -> Result:
        """Set a line percent from a raw cell entry."""
        if not self._index_valid(index):
            return False, "row_invalid"
        try:
            lines = self._balancer.set_percent(
                self._formula.lines, index, value, self._formula.total_weight
            )
        except QspLineEditError:
            return False, "qsp_locked"
        self._apply(lines)
        return True, None

    def set_grams_safe(self, index: int, value: Any) -> Result:
        if not self._index_valid(index):
            return False, "row_invalid"
        try:
            lines = self._balancer.set_grams(
                self._formula.lines, index, value, self._formula.total_weight
            )
        except QspLineEditError:
            return False, "qsp_locked"
        self._apply(lines)
        return True, None

    def set_phase_safe(self, index: int, raw_phase: Any) -> Result:
        if not self._index_valid(index):
            return False, "row_invalid"
        self._apply(
            self._balancer.set_phase(
                self._formula.lines, index, raw_phase, self._formula.total_weight
            )
        )
        return True, None

    def set_qsp_safe(self, index: int, is_qsp: bool) -> Result:
        """Toggle the QSP flag; checking a line unchecks any other."""
        if not self._index_valid(index):
            return False, "row_invalid"
        if is_qsp:
            lines = self._balancer.set_qsp_flag(
                self._formula.lines, index, self._formula.total_weight
            )
        else:
            lines = self._balancer.clear_qsp_flag(self._formula.lines, index)
        self._apply(lines)
        return True, None

    def move_line_safe(self, index: int, direction: int) -> Result:
        """Move a line one row up (-1) or down (+1)."""
        target = index + (1 if direction > 0 else -1)
        if not self._index_valid(index) or not self._index_valid(target):
            return False, "row_invalid"
        self._apply(self._balancer.move_line(self._formula.lines, index, target))
        return True, None

    def set_total_weight_safe(self, value: Any) -> Result:
        """Change the batch weight; grams are rescaled from percents."""
        if parse_total_weight(value) is None:
            return False, "negative_weight"
        self._formula = self._balancer.apply_total_weight(self._formula, value)
        return True, None

    def set_line_fields_safe(self, index: int, **changes: Any) -> Result:
        if not self._index_valid(index):
            return False, "row_invalid"
        try:
            lines = self._balancer.set_line_fields(
                self._formula.lines, index, self._formula.total_weight, **changes
            )
        except InvalidFormulaError as exc:
            logging.error("Invalid line edit at %s: %s", index, exc)
            return False, "invalid_value"
        self._apply(lines)
        return True, None

    def select_ingredient_safe(self, index: int, code: str) -> Result:
        """Fill a line from the organization's ingredient list."""
        if not self._index_valid(index):
            return False, "row_invalid"
        ingredient = self.find_ingredient(code)
        if ingredient is None:
            return self.set_line_fields_safe(index, ingredient_code=(code or "").strip())
        self._apply(
            self._balancer.select_ingredient(
                self._formula.lines, index, ingredient, self._formula.total_weight
            )
        )
        return True, None

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def get_phase_totals(self) -> List[Dict[str, Any]]:
        rows = []
        for total in self._balancer.phase_totals(self._formula.lines):
            rows.append(
                {
                    "phase_key": total.phase_key,
                    "label": total.label,
                    "percent": total.percent_sum,
                    "grams": total.grams_sum,
                    "count": total.count,
                    "is_qsp": total.has_qsp,
                }
            )
        return rows

    def get_summary(self) -> FormulaSummary:
        return self._container.report_service.summarize(self._formula)

    def is_over_limit(self) -> bool:
        return self._balancer.is_over_limit(self._formula.lines)

    def get_total_weight(self) -> Decimal:
        return self._formula.total_weight

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def find_ingredient(self, code: str) -> Optional[IngredientRecord]:
        try:
            organization_id = self._container.session_provider.organization_id()
        except SessionError:
            return None
        return self._container.reference_repository.find_ingredient(organization_id, code)

    def search_ingredients(self, query: str, limit: int = 20) -> List[IngredientRecord]:
        try:
            organization_id = self._container.session_provider.organization_id()
        except SessionError as exc:
            logging.debug("Ingredient search without session: %s", exc)
            return []
        return self._container.reference_repository.search_ingredients(
            organization_id, query, limit=limit
        )

    def import_reference_data(
        self, path: str, mode: str = IMPORT_MODE_MERGE
    ) -> Tuple[Dict[str, int], ImportResult]:
        return self._container.import_reference_data.execute(path, mode=mode)

    def import_reference_data_safe(
        self, path: str, mode: str = IMPORT_MODE_MERGE
    ) -> Tuple[bool, str]:
        """Import the reference workbook and return a message for the status bar."""
        try:
            counts, result = self.import_reference_data(path, mode=mode)
        except SpreadsheetImportError as exc:
            logging.error("Reference import failed: %s", exc)
            return False, exc.message
        except SessionError as exc:
            return False, str(exc)
        message = (
            f"{counts['ingredients']} matières, {counts['allergens']} allergènes, "
            f"{counts['ifra_limits']} limites IFRA, {counts['toxicology_tests']} tests toxico"
        )
        if result.skipped:
            message += f" ({len(result.skipped)} lignes ignorées)"
        return True, message

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> Formula:
        self._formula = self._container.save_formula.execute(self._formula)
        return self._formula

    def save_safe(self) -> Result:
        try:
            self.save()
        except InvalidFormulaError:
            return False, "name_required"
        except SessionError:
            return False, "not_authenticated"
        except FormulatorError as exc:
            logging.error("Error saving formula: %s", exc)
            return False, "save_failed"
        return True, None

    def load(self, formula_id: int) -> Formula:
        formula = self._container.load_formula.execute(formula_id)
        lines = self._balancer.sort_by_phase(
            self._balancer.recompute_qsp(formula.lines, formula.total_weight)
        )
        self._formula = formula.with_lines(lines)
        return self._formula

    def load_safe(self, formula_id: int) -> Result:
        try:
            self.load(formula_id)
        except FormulaNotFoundError:
            return False, "not_found"
        except SessionError:
            return False, "not_authenticated"
        except FormulatorError as exc:
            logging.error("Error loading formula %s: %s", formula_id, exc)
            return False, "load_failed"
        return True, None

    def list_formulas(self) -> List[Dict[str, Any]]:
        try:
            formulas = self._container.list_formulas.execute()
        except SessionError as exc:
            logging.debug("Listing formulas without session: %s", exc)
            return []
        return [
            {
                "id": f.id,
                "display_name": f.display_name,
                "formulator": f.formulator,
                "is_active": f.is_active,
                "updated_at": f.updated_at,
                "line_count": f.line_count,
            }
            for f in formulas
        ]

    def delete_formula_safe(self, formula_id: int) -> Result:
        try:
            self._container.delete_formula.execute(formula_id)
        except FormulaNotFoundError:
            return False, "not_found"
        except SessionError:
            return False, "not_authenticated"
        if self._formula.id == formula_id:
            self._formula = self._formula.evolve(id=None)
        return True, None

    def set_active_version_safe(self, formula_id: Optional[int] = None) -> Result:
        """Mark a stored version (the current one by default) as production."""
        formula_id = formula_id if formula_id is not None else self._formula.id
        if formula_id is None:
            return False, "not_saved"
        try:
            active = self._container.set_active_version.execute(formula_id)
        except FormulaNotFoundError:
            return False, "not_found"
        except SessionError:
            return False, "not_authenticated"
        if self._formula.id is not None and self._formula.name == active.name:
            self._formula = self._formula.evolve(is_active=self._formula.id == formula_id)
        return True, None

    # ------------------------------------------------------------------
    # Version comparison
    # ------------------------------------------------------------------

    def get_version_families(self) -> Dict[str, List[Dict[str, Any]]]:
        """Formula names with several stored versions, for the comparison picker."""
        try:
            families = self._container.compare_versions.families()
        except SessionError as exc:
            logging.debug("Listing versions without session: %s", exc)
            return {}
        return {
            name: [{"id": f.id, "version": f.version, "is_active": f.is_active} for f in versions]
            for name, versions in families.items()
        }

    def compare_versions(
        self, name: str, reference_id: Optional[int] = None
    ) -> Optional[VersionComparison]:
        try:
            return self._container.compare_versions.execute(name, reference_id=reference_id)
        except (FormulaNotFoundError, SessionError) as exc:
            logging.error("Cannot compare versions of %r: %s", name, exc)
            return None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_to_excel(self, output_path: str) -> None:
        self._container.export_formula.execute(self._formula, output_path)

    def export_to_excel_safe(self, output_path: str) -> Result:
        try:
            self.export_to_excel(output_path)
        except SessionError:
            return False, "not_authenticated"
        except FormulatorError as exc:
            logging.error("Error exporting formula: %s", exc)
            return False, "export_failed"
        return True, None

    def safe_base_name(self, name: str, fallback: str = "formule") -> str:
        """File name stem derived from the formula name."""
        cleaned = re.sub(r"[^\w\- ]+", "", name or "", flags=re.UNICODE).strip()
        cleaned = re.sub(r"\s+", "_", cleaned)
        return cleaned or fallback

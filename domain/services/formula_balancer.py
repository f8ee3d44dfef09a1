"""Formula balancer.

Keeps the lines of a formula consistent: percent/grams conversion through
the total weight, the computed QSP (quantité suffisante pour) line and the
ordering of lines by manufacturing phase.

Every operation is pure: it takes a line sequence and returns a new list,
leaving the input untouched.
"""

from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from domain.exceptions import InvalidFormulaError, LineIndexError, QspLineEditError
from domain.models import Formula, FormulaLine, IngredientRecord, PhaseTotal
from domain.services.number_parser import parse_quantity, parse_user_number

HUNDRED = Decimal("100")
ZERO = Decimal("0")

QSP_PHASE_KEY = "QSP"
UNPHASED_KEY = ""

_PHASE_DIGITS = "0123456789"
_EDITABLE_PHASE_DIGITS = "123456789"
_AUXILIARY_FIELDS = frozenset(
    {"ingredient_code", "ingredient_name", "notes", "price_per_kilo", "stock_indicator"}
)


def numeric_phase(phase: Optional[str]) -> int:
    """Parse a single-digit phase; anything else sorts as phase 0."""
    text = (phase or "").strip()
    if len(text) == 1 and text in _PHASE_DIGITS:
        return int(text)
    return 0


def phase_sort_key(line: FormulaLine) -> Tuple[int, int]:
    """Composite key: phase number, then QSP before the rest of its phase."""
    return numeric_phase(line.phase), 0 if line.is_qsp else 1


def phase_group_key(line: FormulaLine) -> str:
    """Key used to group lines in phase totals.

    A QSP line joins its phase when it has one; a QSP line without a
    phase forms its own "QSP" group.
    """
    if line.is_qsp:
        return line.phase or QSP_PHASE_KEY
    return line.phase


def sanitize_phase(raw_phase: Any) -> str:
    """Keep the first digit 1-9 typed in a phase field, or nothing."""
    for char in str(raw_phase or ""):
        if char in _EDITABLE_PHASE_DIGITS:
            return char
    return ""


def _weight(value: Any) -> Decimal:
    return parse_quantity(value)


def parse_total_weight(value: Any) -> Optional[Decimal]:
    """Parse a batch weight entry: unparseable input is 0, a negative weight is None."""
    weight = parse_user_number(value)
    if weight is None:
        return ZERO
    if weight < 0:
        return None
    return weight


def _grams_for(percent: Decimal, total_weight: Decimal) -> Decimal:
    return total_weight * percent / HUNDRED


def _percent_for(grams: Decimal, total_weight: Decimal) -> Decimal:
    if total_weight == 0:
        return ZERO
    return grams / total_weight * HUNDRED


def _check_index(lines: Sequence[FormulaLine], index: int) -> None:
    if not 0 <= index < len(lines):
        raise LineIndexError(index, len(lines))


class PhaseTotals:
    """Lazy, restartable view over per-phase aggregates.

    Totals are computed each time the view is iterated, from the line
    snapshot taken at construction.
    """

    def __init__(self, lines: Sequence[FormulaLine]) -> None:
        self._lines = tuple(lines)

    def __iter__(self) -> Iterator[PhaseTotal]:
        groups: Dict[str, List[FormulaLine]] = {}
        for line in self._lines:
            groups.setdefault(phase_group_key(line), []).append(line)

        def group_order(item: Tuple[int, str]) -> Tuple[int, int, int]:
            position, key = item
            members = groups[key]
            is_qsp_group = any(line.is_qsp for line in members) and not key.isdigit()
            return numeric_phase(key), 0 if is_qsp_group else 1, position

        ordered = sorted(enumerate(groups), key=group_order)
        for _, key in ordered:
            members = groups[key]
            yield PhaseTotal(
                phase_key=key,
                percent_sum=sum((line.percent for line in members), ZERO),
                grams_sum=sum((line.grams for line in members), ZERO),
                count=len(members),
                has_qsp=any(line.is_qsp for line in members),
            )

    def __repr__(self) -> str:
        return f"PhaseTotals({len(self._lines)} lines)"


class FormulaBalancer:
    """Service maintaining formula line invariants.

    - at most one QSP line, whose percent fills the formula up to 100%
    - grams and percent consistent through the total weight
    - lines ordered by phase, QSP first within its phase
    """

    # ------------------------------------------------------------------
    # QSP
    # ------------------------------------------------------------------

    def recompute_qsp(
        self,
        lines: Sequence[FormulaLine],
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Recompute the QSP line from the other lines.

        Args:
            lines: Current lines
            total_weight: Formula total weight in grams

        Returns:
            New line list; unchanged when there is no QSP line

        Note:
            If non-QSP lines already exceed 100%, the QSP line floors at 0
            and the formula stays over 100% (see ``is_over_limit``).
        """
        result = list(lines)
        qsp_index = next((i for i, line in enumerate(result) if line.is_qsp), None)
        if qsp_index is None:
            return result

        weight = _weight(total_weight)
        non_qsp_sum = self.total_percent_non_qsp(result)
        qsp_percent = max(ZERO, HUNDRED - non_qsp_sum)
        result[qsp_index] = result[qsp_index].evolve(
            percent=qsp_percent,
            grams=_grams_for(qsp_percent, weight),
        )
        return result

    def set_qsp_flag(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Mark the line at ``index`` as QSP, clearing every other flag.

        The most recent toggle wins regardless of earlier toggles.
        """
        _check_index(lines, index)
        result = [
            line.evolve(is_qsp=(i == index)) if line.is_qsp or i == index else line
            for i, line in enumerate(lines)
        ]
        result = self.recompute_qsp(result, total_weight)
        return self.sort_by_phase(result)

    def clear_qsp_flag(
        self,
        lines: Sequence[FormulaLine],
        index: int,
    ) -> List[FormulaLine]:
        """Unmark the QSP line at ``index``; it keeps its last values."""
        _check_index(lines, index)
        result = list(lines)
        if not result[index].is_qsp:
            return result
        result[index] = result[index].evolve(is_qsp=False)
        return self.sort_by_phase(result)

    # ------------------------------------------------------------------
    # Percent / grams / total weight
    # ------------------------------------------------------------------

    def set_percent(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        new_percent: Any,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Set a line's percent and derive its grams.

        Args:
            lines: Current lines
            index: Index of a non-QSP line
            new_percent: User entry; invalid, empty or negative becomes 0
            total_weight: Formula total weight in grams

        Raises:
            LineIndexError: If index is out of range
            QspLineEditError: If the line is the QSP line
        """
        _check_index(lines, index)
        if lines[index].is_qsp:
            raise QspLineEditError("QSP line percent is computed, not set")

        weight = _weight(total_weight)
        percent = parse_quantity(new_percent)
        result = list(lines)
        result[index] = result[index].evolve(
            percent=percent,
            grams=_grams_for(percent, weight),
        )
        result = self.recompute_qsp(result, weight)
        return self.sort_by_phase(result)

    def set_grams(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        new_grams: Any,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Set a line's grams and derive its percent.

        A zero total weight yields a percent of 0.

        Raises:
            LineIndexError: If index is out of range
            QspLineEditError: If the line is the QSP line
        """
        _check_index(lines, index)
        if lines[index].is_qsp:
            raise QspLineEditError("QSP line grams are computed, not set")

        weight = _weight(total_weight)
        grams = parse_quantity(new_grams)
        result = list(lines)
        result[index] = result[index].evolve(
            percent=_percent_for(grams, weight),
            grams=grams,
        )
        result = self.recompute_qsp(result, weight)
        return self.sort_by_phase(result)

    def set_total_weight(
        self,
        lines: Sequence[FormulaLine],
        new_total_weight: Any,
    ) -> List[FormulaLine]:
        """Rescale every line's grams from its percent.

        A negative weight is rejected and the lines are returned as-is.
        Unparseable input counts as 0.
        """
        weight = parse_total_weight(new_total_weight)
        if weight is None:
            return list(lines)

        result = [line.evolve(grams=_grams_for(line.percent, weight)) for line in lines]
        return self.recompute_qsp(result, weight)

    def apply_total_weight(self, formula: Formula, new_total_weight: Any) -> Formula:
        """Formula-level ``set_total_weight`` that also stores the new weight."""
        weight = parse_total_weight(new_total_weight)
        if weight is None:
            return formula
        lines = self.set_total_weight(formula.lines, weight)
        return formula.evolve(total_weight=weight, lines=tuple(lines))

    # ------------------------------------------------------------------
    # Phases and ordering
    # ------------------------------------------------------------------

    def sort_by_phase(self, lines: Sequence[FormulaLine]) -> List[FormulaLine]:
        """Stable sort by (phase number, QSP first)."""
        return sorted(lines, key=phase_sort_key)

    def set_phase(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        raw_phase: Any,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Set a line's phase from a raw field entry, then re-sort."""
        _check_index(lines, index)
        result = list(lines)
        result[index] = result[index].evolve(phase=sanitize_phase(raw_phase))
        result = self.recompute_qsp(result, total_weight)
        return self.sort_by_phase(result)

    def move_line(
        self,
        lines: Sequence[FormulaLine],
        from_index: int,
        to_index: int,
    ) -> List[FormulaLine]:
        """Swap a line with its neighbour.

        Manual moves are not re-sorted, so a formulator can curate the
        order inside a phase block.

        Raises:
            LineIndexError: If either index is out of range
            InvalidFormulaError: If the move is not to an adjacent position
        """
        _check_index(lines, from_index)
        _check_index(lines, to_index)
        if abs(from_index - to_index) != 1:
            raise InvalidFormulaError(
                f"Lines can only move one position at a time ({from_index} -> {to_index})"
            )
        result = list(lines)
        result[from_index], result[to_index] = result[to_index], result[from_index]
        return result

    def phase_totals(self, lines: Sequence[FormulaLine]) -> PhaseTotals:
        """Per-phase percent/grams totals, ordered like ``sort_by_phase``."""
        return PhaseTotals(lines)

    # ------------------------------------------------------------------
    # Line management
    # ------------------------------------------------------------------

    def add_line(
        self,
        lines: Sequence[FormulaLine],
        line: Optional[FormulaLine] = None,
    ) -> List[FormulaLine]:
        """Append a line (blank by default) at the end of the formula."""
        new_line = line if line is not None else FormulaLine()
        if new_line.is_qsp:
            raise InvalidFormulaError("Use set_qsp_flag to mark a QSP line")
        return [*lines, new_line]

    def remove_line(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Remove the line at ``index`` and rebalance."""
        _check_index(lines, index)
        result = [line for i, line in enumerate(lines) if i != index]
        result = self.recompute_qsp(result, total_weight)
        return self.sort_by_phase(result)

    def set_line_fields(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        total_weight: Any,
        **changes: Any,
    ) -> List[FormulaLine]:
        """Update auxiliary fields (ingredient, notes, price, stock colour).

        Raises:
            InvalidFormulaError: If a balanced field is passed; those have
                dedicated operations
        """
        _check_index(lines, index)
        unknown = set(changes) - _AUXILIARY_FIELDS
        if unknown:
            raise InvalidFormulaError(
                f"Fields not editable here: {', '.join(sorted(unknown))}"
            )
        if "price_per_kilo" in changes and changes["price_per_kilo"] is not None:
            price = parse_user_number(changes["price_per_kilo"])
            changes["price_per_kilo"] = price if price is not None and price > 0 else None

        result = list(lines)
        try:
            result[index] = result[index].evolve(**changes)
        except ValueError as exc:
            raise InvalidFormulaError(str(exc)) from exc
        result = self.recompute_qsp(result, total_weight)
        return self.sort_by_phase(result)

    def select_ingredient(
        self,
        lines: Sequence[FormulaLine],
        index: int,
        ingredient: IngredientRecord,
        total_weight: Any,
    ) -> List[FormulaLine]:
        """Point a line at a raw material from the ingredient list."""
        return self.set_line_fields(
            lines,
            index,
            total_weight,
            ingredient_code=ingredient.code,
            ingredient_name=ingredient.name,
            price_per_kilo=ingredient.price_per_kilo,
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def total_percent_non_qsp(self, lines: Sequence[FormulaLine]) -> Decimal:
        return sum((line.percent for line in lines if not line.is_qsp), ZERO)

    def qsp_percent(self, lines: Sequence[FormulaLine]) -> Decimal:
        """Percent the QSP line should carry (0 when there is none)."""
        if not any(line.is_qsp for line in lines):
            return ZERO
        return max(ZERO, HUNDRED - self.total_percent_non_qsp(lines))

    def total_percent(self, lines: Sequence[FormulaLine]) -> Decimal:
        return self.total_percent_non_qsp(lines) + self.qsp_percent(lines)

    def is_over_limit(self, lines: Sequence[FormulaLine]) -> bool:
        """Warning state: the formula adds up to more than 100%."""
        return self.total_percent(lines) > HUNDRED

    def qsp_count(self, lines: Sequence[FormulaLine]) -> int:
        return sum(1 for line in lines if line.is_qsp)

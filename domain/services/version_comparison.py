"""Side-by-side comparison of the versions of one formula.

Versions are grouped by formula name. Lines are matched across versions
by ingredient code (or name when there is no code) and each version's
percent is compared to a reference version.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import cmp_to_key
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from domain.models import Formula, FormulaLine

UNNAMED_FAMILY = "Sans nom"
EMPTY_VALUE = "—"

TREND_MORE = "more"
TREND_LESS = "less"
TREND_SAME = "same"


def line_key(line: FormulaLine) -> str:
    """Identity of a line across versions: its code, else its name."""
    return line.ingredient_code.strip() or line.ingredient_name.strip()


def lines_equal(a: FormulaLine, b: FormulaLine) -> bool:
    """True when two lines have the same ingredient, phase, percent and grams."""
    return (
        a.phase.strip() == b.phase.strip()
        and a.percent == b.percent
        and a.grams == b.grams
        and a.ingredient_code.strip() == b.ingredient_code.strip()
        and a.ingredient_name.strip() == b.ingredient_name.strip()
    )


def _compare_versions(a: Formula, b: Formula) -> int:
    va = a.version.strip()
    vb = b.version.strip()
    if va.isdigit() and vb.isdigit():
        return int(va) - int(vb)
    return (va > vb) - (va < vb)


def sort_versions(formulas: Sequence[Formula]) -> List[Formula]:
    """Numeric versions in numeric order, anything else alphabetically."""
    return sorted(formulas, key=cmp_to_key(_compare_versions))


def version_families(formulas: Sequence[Formula]) -> Dict[str, List[Formula]]:
    """Formula names that have at least two versions, with their sorted versions."""
    by_name: Dict[str, List[Formula]] = {}
    for formula in formulas:
        by_name.setdefault(formula.name.strip() or UNNAMED_FAMILY, []).append(formula)
    return {
        name: sort_versions(versions)
        for name, versions in sorted(by_name.items())
        if len(versions) >= 2
    }


@dataclass(frozen=True)
class ParameterComparison:
    """One header field (version, formulator, pH...) across versions."""

    label: str
    values: Tuple[str, ...]
    differs_from_reference: Tuple[bool, ...]


@dataclass(frozen=True)
class LineComparison:
    """One ingredient across versions.

    ``percents`` holds None where a version does not use the ingredient.
    ``trends`` compares each version's percent to the reference version's
    (a missing reference line counts as 0); it is None for the reference
    itself and for versions without the ingredient.
    """

    key: str
    display_name: str
    percents: Tuple[Optional[Decimal], ...]
    trends: Tuple[Optional[str], ...]
    changed: Tuple[bool, ...]


@dataclass(frozen=True)
class VersionComparison:
    versions: Tuple[Formula, ...]
    reference_index: int
    parameters: Tuple[ParameterComparison, ...]
    lines: Tuple[LineComparison, ...]

    @property
    def reference(self) -> Formula:
        return self.versions[self.reference_index]


def _stability_start(formula: Formula) -> str:
    start = formula.stability.start_date
    return start.strftime("%d/%m/%Y") if start else EMPTY_VALUE


PARAMETERS: Tuple[Tuple[str, Callable[[Formula], str]], ...] = (
    ("Version", lambda f: f.version or EMPTY_VALUE),
    ("Objectif d'amélioration", lambda f: f.improvement_goal or EMPTY_VALUE),
    ("Formulateur", lambda f: f.formulator or EMPTY_VALUE),
    ("Début stabilité", _stability_start),
    ("Protocole", lambda f: f.notes.protocol[:80] or EMPTY_VALUE),
    ("Aspect", lambda f: f.notes.aspect[:80] or EMPTY_VALUE),
    ("pH", lambda f: f.notes.ph or EMPTY_VALUE),
)


class VersionComparisonService:
    """Build comparison tables for the versions of one formula."""

    def compare(
        self, versions: Sequence[Formula], reference_id: Optional[int] = None
    ) -> VersionComparison:
        """Compare versions against a reference version.

        Args:
            versions: Versions to show, in column order
            reference_id: Id of the reference version (defaults to the first)

        Raises:
            ValueError: If no version is given
        """
        if not versions:
            raise ValueError("No version to compare")
        versions = tuple(versions)
        reference_index = next(
            (i for i, f in enumerate(versions) if reference_id is not None and f.id == reference_id),
            0,
        )
        return VersionComparison(
            versions=versions,
            reference_index=reference_index,
            parameters=tuple(
                self._compare_parameter(label, getter, versions, reference_index)
                for label, getter in PARAMETERS
            ),
            lines=self._compare_lines(versions, reference_index),
        )

    def _compare_parameter(
        self,
        label: str,
        getter: Callable[[Formula], str],
        versions: Tuple[Formula, ...],
        reference_index: int,
    ) -> ParameterComparison:
        values = tuple(getter(f) for f in versions)
        base = values[reference_index]
        return ParameterComparison(
            label=label,
            values=values,
            differs_from_reference=tuple(
                i != reference_index and value != base for i, value in enumerate(values)
            ),
        )

    def _compare_lines(
        self, versions: Tuple[Formula, ...], reference_index: int
    ) -> Tuple[LineComparison, ...]:
        maps = [{line_key(line): line for line in f.lines} for f in versions]
        keys = sorted({key for lines in maps for key in lines})
        reference = maps[reference_index]

        rows = []
        for key in keys:
            first = next(m[key] for m in maps if key in m)
            ref_line = reference.get(key)
            ref_percent = ref_line.percent if ref_line is not None else Decimal("0")

            percents = []
            trends = []
            changed = []
            for index, lines in enumerate(maps):
                line = lines.get(key)
                percents.append(line.percent if line is not None else None)
                if index == reference_index or line is None:
                    trends.append(None)
                elif line.percent > ref_percent:
                    trends.append(TREND_MORE)
                elif line.percent < ref_percent:
                    trends.append(TREND_LESS)
                else:
                    trends.append(TREND_SAME)
                if index == reference_index:
                    changed.append(False)
                elif line is None or ref_line is None:
                    changed.append(line is not ref_line)
                else:
                    changed.append(not lines_equal(line, ref_line))

            rows.append(
                LineComparison(
                    key=key,
                    display_name=first.ingredient_name or first.ingredient_code or key,
                    percents=tuple(percents),
                    trends=tuple(trends),
                    changed=tuple(changed),
                )
            )
        return tuple(rows)

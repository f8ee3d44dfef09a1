"""Formula report calculations.

Derives the figures shown in exports: price per kilo, INCI list,
allergen concentrations and IFRA maximum use levels.
Pure business logic with no UI dependencies.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from domain.models import (
    AllergenRecord,
    Formula,
    FormulaLine,
    IfraLimit,
    IngredientRecord,
    PhaseTotal,
    normalize_code,
)
from domain.services.formula_balancer import FormulaBalancer

HUNDRED = Decimal("100")

# IFRA product classes, in certificate order.
IFRA_CATEGORY_ORDER: Tuple[str, ...] = (
    "1", "2", "3", "4", "5A", "5B", "5C", "5D", "6", "7A", "7B",
    "8", "9", "10A", "10B", "11A", "11B", "12",
)

IFRA_CATEGORY_DESCRIPTIONS: Dict[str, str] = {
    "1": "Produits appliqués sur les lèvres",
    "2": "Produits appliqués sur les aisselles",
    "3": "Produits appliqués sur le visage ou le corps du bout des doigts",
    "4": "Parfums fins et produits associés",
    "5A": "Produits pour le corps (lotions, crèmes corporelles)",
    "5B": "Produits pour le visage (crèmes hydratantes)",
    "5C": "Produits pour les mains",
    "5D": "Crèmes et huiles pour bébé",
    "6": "Bains de bouche et dentifrices",
    "7A": "Produits capillaires rincés",
    "7B": "Produits capillaires non rincés",
    "8": "Produits à exposition anogénitale significative",
    "9": "Produits rincés pour le corps (savons, gels douche)",
    "10A": "Produits d'entretien ménager hors aérosols",
    "10B": "Produits d'entretien ménager en aérosol",
    "11A": "Contact cutané via support inerte, sans exposition UV",
    "11B": "Contact cutané via support inerte, avec exposition UV possible",
    "12": "Produits sans contact cutané (bougies, diffuseurs)",
}


def ifra_category_description(category: str) -> str:
    return IFRA_CATEGORY_DESCRIPTIONS.get(category.strip().upper(), "")


@dataclass(frozen=True)
class InciEntry:
    inci: str
    percent: Decimal


@dataclass(frozen=True)
class AllergenSource:
    material_name: str
    line_percent: Decimal
    allergen_percent: Decimal


@dataclass(frozen=True)
class AllergenEntry:
    allergen_name: str
    total_percent: Decimal
    sources: Tuple[AllergenSource, ...]


@dataclass(frozen=True)
class IfraCategoryLimit:
    category: str
    description: str
    max_percent: Optional[Decimal]


@dataclass(frozen=True)
class IfraCertificate:
    """Maximum use level per IFRA class for a formula."""

    rows: Tuple[IfraCategoryLimit, ...]
    formula_codes: Tuple[str, ...]
    matched_codes: Tuple[str, ...]

    @property
    def has_data(self) -> bool:
        return bool(self.matched_codes)


@dataclass(frozen=True)
class FormulaSummary:
    total_weight: Decimal
    percent_non_qsp: Decimal
    qsp_percent: Decimal
    total_percent: Decimal
    is_over_limit: bool
    cost_per_kilo: Decimal
    has_qsp: bool
    phase_totals: Tuple[PhaseTotal, ...]


@dataclass(frozen=True)
class FormulaReport:
    """Everything the exporter needs for one formula."""

    formula: Formula
    summary: FormulaSummary
    inci: Tuple[InciEntry, ...]
    allergens: Tuple[AllergenEntry, ...]
    ifra: IfraCertificate
    inci_by_code: Mapping[str, str]
    supplier_by_code: Mapping[str, str]

    def inci_for(self, code: str) -> str:
        return _lookup(self.inci_by_code, code)

    def supplier_for(self, code: str) -> str:
        return _lookup(self.supplier_by_code, code)


def _lookup(mapping: Mapping[str, str], code: str) -> str:
    key = normalize_code(code)
    for candidate, value in mapping.items():
        if normalize_code(candidate) == key:
            return value
    return ""


class FormulaReportService:
    """Compute export/report figures for a formula."""

    def __init__(self, balancer: Optional[FormulaBalancer] = None) -> None:
        self._balancer = balancer or FormulaBalancer()

    def summarize(self, formula: Formula) -> FormulaSummary:
        """Totals block shown under the formula table."""
        lines = formula.lines
        return FormulaSummary(
            total_weight=formula.total_weight,
            percent_non_qsp=self._balancer.total_percent_non_qsp(lines),
            qsp_percent=self._balancer.qsp_percent(lines),
            total_percent=self._balancer.total_percent(lines),
            is_over_limit=self._balancer.is_over_limit(lines),
            cost_per_kilo=self.cost_per_kilo(lines),
            has_qsp=self._balancer.qsp_count(lines) > 0,
            phase_totals=tuple(self._balancer.phase_totals(lines)),
        )

    def build_report(
        self,
        formula: Formula,
        ingredients: Iterable[IngredientRecord] = (),
        allergens: Iterable[AllergenRecord] = (),
        ifra_limits: Iterable[IfraLimit] = (),
    ) -> FormulaReport:
        """Assemble summary, INCI list, allergens and IFRA certificate."""
        ingredients = list(ingredients)
        inci_by_code = index_inci(ingredients)
        return FormulaReport(
            formula=formula,
            summary=self.summarize(formula),
            inci=tuple(self.inci_breakdown(formula.lines, inci_by_code)),
            allergens=tuple(
                self.allergen_breakdown(formula.lines, index_allergens(allergens))
            ),
            ifra=self.ifra_certificate(formula.lines, ifra_limits),
            inci_by_code=inci_by_code,
            supplier_by_code=index_suppliers(ingredients),
        )

    def cost_per_kilo(self, lines: Sequence[FormulaLine]) -> Decimal:
        """Price per kilo of the finished formula."""
        total = Decimal("0")
        for line in lines:
            contribution = line.cost_per_kilo
            if contribution is not None:
                total += contribution
        return total

    def inci_breakdown(
        self,
        lines: Sequence[FormulaLine],
        inci_by_code: Mapping[str, str],
    ) -> List[InciEntry]:
        """Sum line percents per INCI name, highest first.

        Lines whose ingredient has no INCI in the reference data are left out.
        """
        lookup = {normalize_code(code): inci for code, inci in inci_by_code.items()}
        totals: Dict[str, Decimal] = {}
        for line in lines:
            inci = (lookup.get(normalize_code(line.ingredient_code)) or "").strip()
            if not inci:
                continue
            totals[inci] = totals.get(inci, Decimal("0")) + line.percent
        entries = [InciEntry(inci=name, percent=pct) for name, pct in totals.items()]
        return sorted(entries, key=lambda entry: entry.percent, reverse=True)

    def allergen_breakdown(
        self,
        lines: Sequence[FormulaLine],
        allergens_by_code: Mapping[str, Sequence[AllergenRecord]],
    ) -> List[AllergenEntry]:
        """Allergen concentration in the finished formula, highest first.

        Each material contributes ``line percent * allergen percent / 100``.
        The QSP line is a filler and is not scanned.
        """
        lookup = {normalize_code(code): records for code, records in allergens_by_code.items()}
        totals: Dict[str, Decimal] = {}
        sources: Dict[str, List[AllergenSource]] = {}
        for line in lines:
            code = normalize_code(line.ingredient_code)
            if not code or line.is_qsp:
                continue
            for record in lookup.get(code, ()):
                name = record.allergen_name
                contribution = line.percent * record.percentage / HUNDRED
                totals[name] = totals.get(name, Decimal("0")) + contribution
                sources.setdefault(name, []).append(
                    AllergenSource(
                        material_name=line.ingredient_name or line.ingredient_code,
                        line_percent=line.percent,
                        allergen_percent=record.percentage,
                    )
                )
        entries = [
            AllergenEntry(allergen_name=name, total_percent=total, sources=tuple(sources[name]))
            for name, total in totals.items()
        ]
        return sorted(entries, key=lambda entry: entry.total_percent, reverse=True)

    def ifra_certificate(
        self,
        lines: Sequence[FormulaLine],
        limits: Iterable[IfraLimit],
    ) -> IfraCertificate:
        """Maximum concentration per IFRA class.

        For each class, the most restrictive limit among the formula's
        (non-QSP) materials that appear in the IFRA table.
        """
        formula_codes: List[str] = []
        for line in lines:
            code = line.ingredient_code.strip()
            if line.is_qsp or not code or code in formula_codes:
                continue
            formula_codes.append(code)
        wanted = {normalize_code(code) for code in formula_codes}

        by_category: Dict[str, Dict[str, Decimal]] = {}
        descriptions: Dict[str, str] = {}
        matched: set[str] = set()
        for limit in limits:
            code = normalize_code(limit.ingredient_code)
            if code not in wanted:
                continue
            category = limit.category_number.strip().upper()
            matched.add(code)
            by_category.setdefault(category, {})[code] = limit.limit_percent
            if limit.description and category not in descriptions:
                descriptions[category] = limit.description

        rows = []
        for category in IFRA_CATEGORY_ORDER:
            percents = list(by_category.get(category, {}).values())
            rows.append(
                IfraCategoryLimit(
                    category=category,
                    description=ifra_category_description(category) or descriptions.get(category, ""),
                    max_percent=min(percents) if percents else None,
                )
            )
        return IfraCertificate(
            rows=tuple(rows),
            formula_codes=tuple(formula_codes),
            matched_codes=tuple(c for c in formula_codes if normalize_code(c) in matched),
        )


def index_inci(ingredients: Iterable[IngredientRecord]) -> Dict[str, str]:
    """Map ingredient code -> INCI name."""
    return {record.code: record.inci for record in ingredients if record.inci}


def index_suppliers(ingredients: Iterable[IngredientRecord]) -> Dict[str, str]:
    return {record.code: record.supplier for record in ingredients if record.supplier}


def index_allergens(records: Iterable[AllergenRecord]) -> Dict[str, List[AllergenRecord]]:
    """Group allergen rows by ingredient code."""
    grouped: Dict[str, List[AllergenRecord]] = {}
    for record in records:
        grouped.setdefault(record.ingredient_code, []).append(record)
    return grouped

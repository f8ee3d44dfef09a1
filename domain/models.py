"""Domain models.

Core business entities that represent the problem domain.
These models are framework-agnostic and contain only business logic.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

DEFAULT_TOTAL_WEIGHT = Decimal("1000")

STOCK_INDICATORS = ("neutre", "rouge", "vert", "bleu")

STABILITY_DAYS = ("J0", "J1", "J7", "J15", "J30", "J60", "J90")


@dataclass(frozen=True)
class FormulaLine:
    """One ingredient entry in a formula.

    Immutable value object; the balancer returns updated copies.
    """

    phase: str = ""
    ingredient_code: str = ""
    ingredient_name: str = ""
    percent: Decimal = Decimal("0")
    grams: Decimal = Decimal("0")
    is_qsp: bool = False
    notes: str = ""
    price_per_kilo: Optional[Decimal] = None
    stock_indicator: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate line data."""
        object.__setattr__(self, "phase", (self.phase or "").strip())
        if self.percent < 0:
            raise ValueError(f"Line percent cannot be negative: {self.percent}")
        if self.grams < 0:
            raise ValueError(f"Line grams cannot be negative: {self.grams}")
        if self.stock_indicator is not None and self.stock_indicator not in STOCK_INDICATORS:
            raise ValueError(f"Unknown stock indicator: {self.stock_indicator}")

    def evolve(self, **changes) -> "FormulaLine":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def has_phase(self) -> bool:
        return bool(self.phase)

    @property
    def cost_per_kilo(self) -> Optional[Decimal]:
        """Contribution of this line to the formula price per kilo."""
        if self.price_per_kilo is None or self.percent <= 0:
            return None
        return self.price_per_kilo * self.percent / Decimal("100")


@dataclass(frozen=True)
class FormulaNotes:
    """Free-text lab notes attached to a formula version."""

    protocol: str = ""
    aspect: str = ""
    odour: str = ""
    ph: str = ""
    microscope: str = ""
    remark: str = ""
    packaging: str = ""
    conclusion: str = ""

    def is_empty(self) -> bool:
        return not any(
            value.strip()
            for value in (
                self.protocol,
                self.aspect,
                self.odour,
                self.ph,
                self.microscope,
                self.remark,
                self.packaging,
                self.conclusion,
            )
        )


@dataclass(frozen=True)
class StabilityDay:
    """Observation recorded at one checkpoint (J0, J7, ...)."""

    day: str
    notes: str = ""


@dataclass(frozen=True)
class StabilityTracking:
    """Stability test of a formula version: start date plus checkpoint notes.

    A test that was never started (or was stopped) has no start date and
    no checkpoints.
    """

    start_date: Optional[datetime] = None
    days: tuple[StabilityDay, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.days, tuple):
            object.__setattr__(self, "days", tuple(self.days))

    @classmethod
    def start(cls, now: datetime) -> "StabilityTracking":
        return cls(start_date=now, days=tuple(StabilityDay(day) for day in STABILITY_DAYS))

    @property
    def is_running(self) -> bool:
        return self.start_date is not None

    def notes_for(self, day: str) -> str:
        for entry in self.days:
            if entry.day == day:
                return entry.notes
        return ""

    def with_day_notes(self, day: str, notes: str) -> "StabilityTracking":
        """Return a copy with the notes of one checkpoint replaced.

        Raises:
            ValueError: If the test is not running or the day is unknown
        """
        if not self.is_running:
            raise ValueError("Stability test has not been started")
        if day not in STABILITY_DAYS:
            raise ValueError(f"Unknown stability checkpoint: {day}")
        known = {entry.day: entry for entry in self.days}
        known[day] = StabilityDay(day, notes or "")
        return replace(self, days=tuple(known[d] for d in STABILITY_DAYS if d in known))

    def elapsed_days(self, now: datetime) -> int:
        if self.start_date is None:
            return 0
        return max((now - self.start_date).days, 0)

    def current_day(self, now: datetime) -> str:
        """Checkpoint the test is currently heading for."""
        days = self.elapsed_days(now)
        if days == 0:
            return "J0"
        if days == 1:
            return "J1"
        for limit, label in ((7, "J7"), (15, "J15"), (30, "J30"), (60, "J60")):
            if days <= limit:
                return label
        return "J90"


@dataclass(frozen=True)
class Formula:
    """A cosmetic formula: ordered lines plus a target total weight.

    Aggregate root. Persisted as an opaque snapshot by the repository.
    """

    name: str = ""
    total_weight: Decimal = DEFAULT_TOTAL_WEIGHT
    lines: tuple[FormulaLine, ...] = field(default_factory=tuple)
    id: Optional[int] = None
    organization_id: Optional[str] = None
    version: str = ""
    formulator: str = ""
    notes: FormulaNotes = field(default_factory=FormulaNotes)
    stability: StabilityTracking = field(default_factory=StabilityTracking)
    improvement_goal: str = ""
    is_active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate formula data."""
        if self.total_weight < 0:
            raise ValueError(f"Total weight cannot be negative: {self.total_weight}")
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))

    def evolve(self, **changes) -> "Formula":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def with_lines(self, lines) -> "Formula":
        return replace(self, lines=tuple(lines))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def display_name(self) -> str:
        """Name with version suffix, as shown in lists and report titles."""
        name = self.name.strip() or "Sans nom"
        if self.version.strip():
            return f"{name} v{self.version.strip()}"
        return name

    @property
    def qsp_line(self) -> Optional[FormulaLine]:
        """The first line flagged QSP, if any."""
        for line in self.lines:
            if line.is_qsp:
                return line
        return None

    def get_line(self, index: int) -> FormulaLine:
        """Get line at the given index."""
        if 0 <= index < len(self.lines):
            return self.lines[index]
        raise IndexError(f"Invalid line index: {index}")

    def is_empty(self) -> bool:
        """Check if formula has no lines."""
        return len(self.lines) == 0


@dataclass(frozen=True)
class PhaseTotal:
    """Aggregated percent/grams for one phase block."""

    phase_key: str
    percent_sum: Decimal
    grams_sum: Decimal
    count: int
    has_qsp: bool = False

    @property
    def label(self) -> str:
        if self.has_qsp and not self.phase_key.isdigit():
            return "QSP"
        if not self.phase_key:
            return "Sans phase"
        return f"Phase {self.phase_key}"


# ============================================================================
# Reference data (imported per organization)
# ============================================================================


@dataclass(frozen=True)
class IngredientRecord:
    """A raw material from the organization's ingredient list."""

    code: str
    name: str
    supplier: str = ""
    inci: str = ""
    category: str = ""
    price_per_kilo: Optional[Decimal] = None
    in_stock: bool = False
    cas_number: str = ""
    functions: str = ""
    impurities: str = ""

    def __post_init__(self) -> None:
        if not self.code.strip():
            raise ValueError("Ingredient code cannot be empty")
        if not self.name.strip():
            raise ValueError("Ingredient name cannot be empty")

    @property
    def code_key(self) -> str:
        """Case-insensitive key used to match codes across sheets."""
        return normalize_code(self.code)


@dataclass(frozen=True)
class AllergenRecord:
    """Allergen content (percent) of one ingredient."""

    ingredient_code: str
    allergen_name: str
    percentage: Decimal

    def __post_init__(self) -> None:
        if not self.allergen_name.strip():
            raise ValueError("Allergen name cannot be empty")
        if self.percentage < 0:
            raise ValueError(f"Allergen percentage cannot be negative: {self.percentage}")


@dataclass(frozen=True)
class IfraLimit:
    """Maximum use level of an ingredient in one IFRA category."""

    category_number: str
    ingredient_code: str
    limit_percent: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        if not self.category_number.strip():
            raise ValueError("IFRA category cannot be empty")
        if self.limit_percent < 0:
            raise ValueError(f"IFRA limit cannot be negative: {self.limit_percent}")


@dataclass(frozen=True)
class ToxicologyTest:
    """A toxicology test result recorded for an ingredient."""

    ingredient_code: str
    test_name: str
    test_result: str = ""
    test_date: str = ""
    notes: str = ""


def normalize_code(code: Optional[str]) -> str:
    """Normalize an ingredient code for case-insensitive matching."""
    return (code or "").strip().lower()

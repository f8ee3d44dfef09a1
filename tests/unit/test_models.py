"""Tests for domain models."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.models import (
    AllergenRecord,
    Formula,
    FormulaLine,
    FormulaNotes,
    IfraLimit,
    IngredientRecord,
    PhaseTotal,
    StabilityTracking,
    normalize_code,
)


class TestFormulaLine:
    """Test FormulaLine model."""

    def test_create_line(self) -> None:
        line = FormulaLine(
            phase="1",
            ingredient_code="MP001",
            ingredient_name="Eau déminéralisée",
            percent=Decimal("70"),
            grams=Decimal("700"),
        )

        assert line.phase == "1"
        assert line.ingredient_code == "MP001"
        assert line.is_qsp is False
        assert line.price_per_kilo is None

    def test_line_is_immutable(self) -> None:
        line = FormulaLine(percent=Decimal("10"))

        with pytest.raises(Exception):  # FrozenInstanceError
            line.percent = Decimal("20")  # type: ignore

    def test_phase_is_stripped(self) -> None:
        assert FormulaLine(phase=" 2 ").phase == "2"
        assert FormulaLine(phase="").has_phase is False

    def test_validates_negative_percent(self) -> None:
        with pytest.raises(ValueError, match="cannot be negative"):
            FormulaLine(percent=Decimal("-1"))

    def test_validates_negative_grams(self) -> None:
        with pytest.raises(ValueError, match="cannot be negative"):
            FormulaLine(grams=Decimal("-1"))

    def test_validates_stock_indicator(self) -> None:
        assert FormulaLine(stock_indicator="vert").stock_indicator == "vert"
        with pytest.raises(ValueError, match="Unknown stock indicator"):
            FormulaLine(stock_indicator="jaune")

    def test_evolve(self) -> None:
        line = FormulaLine(phase="1", percent=Decimal("10"))
        changed = line.evolve(percent=Decimal("15"))

        assert changed.percent == Decimal("15")
        assert changed.phase == "1"
        # Original unchanged
        assert line.percent == Decimal("10")

    def test_cost_per_kilo(self) -> None:
        line = FormulaLine(percent=Decimal("20"), price_per_kilo=Decimal("15"))

        assert line.cost_per_kilo == Decimal("3")

    def test_cost_per_kilo_without_price_or_percent(self) -> None:
        assert FormulaLine(percent=Decimal("20")).cost_per_kilo is None
        assert FormulaLine(price_per_kilo=Decimal("15")).cost_per_kilo is None


class TestFormula:
    """Test Formula model."""

    def test_defaults(self) -> None:
        formula = Formula()

        assert formula.total_weight == Decimal("1000")
        assert formula.lines == ()
        assert formula.is_empty()
        assert formula.notes.is_empty()
        assert formula.id is None

    def test_lines_are_stored_as_tuple(self) -> None:
        formula = Formula(lines=[FormulaLine(phase="1")])

        assert isinstance(formula.lines, tuple)
        assert formula.line_count == 1

    def test_validates_negative_weight(self) -> None:
        with pytest.raises(ValueError, match="cannot be negative"):
            Formula(total_weight=Decimal("-5"))

    def test_display_name(self) -> None:
        assert Formula().display_name == "Sans nom"
        assert Formula(name="Sérum").display_name == "Sérum"
        assert Formula(name="Sérum", version="2").display_name == "Sérum v2"

    def test_qsp_line(self) -> None:
        qsp = FormulaLine(phase="1", is_qsp=True)
        formula = Formula(lines=(FormulaLine(phase="1"), qsp))

        assert formula.qsp_line == qsp
        assert Formula().qsp_line is None

    def test_get_line(self) -> None:
        line = FormulaLine(phase="3")
        formula = Formula(lines=(line,))

        assert formula.get_line(0) == line
        with pytest.raises(IndexError):
            formula.get_line(1)

    def test_with_lines(self) -> None:
        formula = Formula(name="Crème")
        updated = formula.with_lines([FormulaLine(), FormulaLine()])

        assert updated.line_count == 2
        assert updated.name == "Crème"
        assert formula.line_count == 0


class TestFormulaNotes:
    """Test FormulaNotes model."""

    def test_whitespace_only_is_empty(self) -> None:
        assert FormulaNotes(aspect="  ").is_empty()

    def test_any_field_makes_it_non_empty(self) -> None:
        assert not FormulaNotes(ph="5,5").is_empty()


class TestStabilityTracking:
    """Test stability test tracking."""

    START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_not_started_by_default(self) -> None:
        stability = Formula().stability

        assert stability.is_running is False
        assert stability.days == ()
        assert stability.current_day(self.START) == "J0"

    def test_start_creates_every_checkpoint(self) -> None:
        stability = StabilityTracking.start(self.START)

        assert stability.is_running is True
        assert [d.day for d in stability.days] == ["J0", "J1", "J7", "J15", "J30", "J60", "J90"]
        assert all(d.notes == "" for d in stability.days)

    def test_day_notes(self) -> None:
        stability = StabilityTracking.start(self.START).with_day_notes("J15", "Stable, pas d'odeur")

        assert stability.notes_for("J15") == "Stable, pas d'odeur"
        assert stability.notes_for("J7") == ""
        assert len(stability.days) == 7

    def test_day_notes_require_running_test(self) -> None:
        with pytest.raises(ValueError, match="not been started"):
            StabilityTracking().with_day_notes("J0", "x")
        with pytest.raises(ValueError, match="Unknown"):
            StabilityTracking.start(self.START).with_day_notes("J3", "x")

    @pytest.mark.parametrize(
        "elapsed, expected",
        [(0, "J0"), (1, "J1"), (2, "J7"), (7, "J7"), (8, "J15"), (30, "J30"), (45, "J60"), (61, "J90")],
    )
    def test_current_day(self, elapsed, expected) -> None:
        stability = StabilityTracking.start(self.START)

        assert stability.current_day(self.START + timedelta(days=elapsed, hours=1)) == expected


class TestPhaseTotal:
    """Test PhaseTotal labels."""

    def test_labels(self) -> None:
        numeric = PhaseTotal("2", Decimal("10"), Decimal("100"), 1)
        qsp = PhaseTotal("QSP", Decimal("60"), Decimal("600"), 1, has_qsp=True)
        unphased = PhaseTotal("", Decimal("20"), Decimal("200"), 2)

        assert numeric.label == "Phase 2"
        assert qsp.label == "QSP"
        assert unphased.label == "Sans phase"


class TestReferenceRecords:
    """Test reference data models."""

    def test_ingredient_requires_code_and_name(self) -> None:
        with pytest.raises(ValueError, match="code cannot be empty"):
            IngredientRecord(code=" ", name="Glycérine")
        with pytest.raises(ValueError, match="name cannot be empty"):
            IngredientRecord(code="MP1", name="")

    def test_ingredient_code_key(self) -> None:
        assert IngredientRecord(code=" Mp01 ", name="Eau").code_key == "mp01"
        assert normalize_code(None) == ""

    def test_allergen_validation(self) -> None:
        with pytest.raises(ValueError, match="cannot be negative"):
            AllergenRecord("MP1", "Linalool", Decimal("-0.1"))
        with pytest.raises(ValueError, match="name cannot be empty"):
            AllergenRecord("MP1", "", Decimal("0.1"))

    def test_ifra_validation(self) -> None:
        limit = IfraLimit("4", "MP1", Decimal("1.5"), "Parfums fins")

        assert limit.description == "Parfums fins"
        with pytest.raises(ValueError, match="category cannot be empty"):
            IfraLimit("", "MP1", Decimal("1"))
        with pytest.raises(ValueError, match="cannot be negative"):
            IfraLimit("4", "MP1", Decimal("-1"))

"""Tests for the version comparison service."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.models import Formula, FormulaLine, FormulaNotes, StabilityTracking
from domain.services.version_comparison import (
    TREND_LESS,
    TREND_MORE,
    TREND_SAME,
    VersionComparisonService,
    line_key,
    lines_equal,
    sort_versions,
    version_families,
)


def line(code, name, percent, phase="1", grams=None) -> FormulaLine:
    percent = Decimal(percent)
    return FormulaLine(
        phase=phase,
        ingredient_code=code,
        ingredient_name=name,
        percent=percent,
        grams=Decimal(grams) if grams is not None else percent * 10,
    )


def version(formula_id, number, *lines, **fields) -> Formula:
    return Formula(name="Crème", version=number, id=formula_id, lines=lines, **fields)


@pytest.fixture
def service():
    return VersionComparisonService()


class TestHelpers:
    """Test line matching and version ordering."""

    def test_line_key_prefers_code(self) -> None:
        assert line_key(line(" MP1 ", "Eau", "10")) == "MP1"
        assert line_key(line("", " Eau ", "10")) == "Eau"

    def test_lines_equal(self) -> None:
        base = line("MP1", "Eau", "10")

        assert lines_equal(base, line("MP1", "Eau", "10.0"))
        assert not lines_equal(base, line("MP1", "Eau", "10", phase="2"))
        assert not lines_equal(base, line("MP1", "Eau", "10", grams="50"))
        assert not lines_equal(base, line("MP1", "Eau", "12"))

    def test_sort_versions(self) -> None:
        versions = [version(1, "10"), version(2, "2"), version(3, "b"), version(4, "a")]

        assert [f.version for f in sort_versions(versions[:2])] == ["2", "10"]
        assert [f.version for f in sort_versions(versions[2:])] == ["a", "b"]

    def test_version_families(self) -> None:
        formulas = [
            version(1, "2"),
            Formula(name="Gel", version="1", id=2),
            version(3, "1"),
            Formula(name="  ", version="1", id=4),
            Formula(name="", version="2", id=5),
        ]

        families = version_families(formulas)

        assert list(families) == ["Crème", "Sans nom"]
        assert [f.id for f in families["Crème"]] == [3, 1]


class TestCompare:
    """Test comparison tables."""

    @pytest.fixture
    def versions(self):
        start = StabilityTracking.start(datetime(2024, 5, 2, tzinfo=timezone.utc))
        return [
            version(
                1,
                "1",
                line("MP1", "Eau", "80"),
                line("MP2", "Glycérine", "20"),
                notes=FormulaNotes(ph="5,5"),
            ),
            version(
                2,
                "2",
                line("MP1", "Eau", "75"),
                line("MP2", "Glycérine", "20"),
                line("", "Parfum", "5"),
                notes=FormulaNotes(ph="5,5"),
                stability=start,
            ),
            version(3, "3", line("MP1", "Eau", "85"), formulator="Lou"),
        ]

    def test_reference_defaults_to_first(self, service, versions) -> None:
        comparison = service.compare(versions)

        assert comparison.reference_index == 0
        assert comparison.reference.version == "1"

    def test_parameters(self, service, versions) -> None:
        comparison = service.compare(versions, reference_id=1)
        parameters = {p.label: p for p in comparison.parameters}

        assert parameters["Version"].values == ("1", "2", "3")
        assert parameters["Version"].differs_from_reference == (False, True, True)
        assert parameters["pH"].differs_from_reference == (False, False, True)
        assert parameters["Début stabilité"].values == ("—", "02/05/2024", "—")
        assert parameters["Formulateur"].values[2] == "Lou"

    def test_lines(self, service, versions) -> None:
        comparison = service.compare(versions, reference_id=1)
        rows = {row.key: row for row in comparison.lines}

        assert [row.key for row in comparison.lines] == ["MP1", "MP2", "Parfum"]
        assert rows["MP1"].percents == (Decimal("80"), Decimal("75"), Decimal("85"))
        assert rows["MP1"].trends == (None, TREND_LESS, TREND_MORE)
        assert rows["MP2"].trends == (None, TREND_SAME, None)
        assert rows["MP2"].changed == (False, False, True)
        assert rows["Parfum"].percents == (None, Decimal("5"), None)
        assert rows["Parfum"].trends == (None, TREND_MORE, None)
        assert rows["Parfum"].changed == (False, True, False)
        assert rows["Parfum"].display_name == "Parfum"

    def test_other_reference(self, service, versions) -> None:
        comparison = service.compare(versions, reference_id=3)
        rows = {row.key: row for row in comparison.lines}

        assert comparison.reference_index == 2
        assert rows["MP1"].trends == (TREND_LESS, TREND_LESS, None)

    def test_unknown_reference_falls_back_to_first(self, service, versions) -> None:
        assert service.compare(versions, reference_id=99).reference_index == 0

    def test_no_versions(self, service) -> None:
        with pytest.raises(ValueError):
            service.compare([])

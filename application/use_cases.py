"""Application use cases.

Use cases orchestrate domain services and infrastructure to fulfill
business workflows. Every use case touching stored data resolves the
current organization through the session provider first.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from domain.exceptions import FormulaNotFoundError
from domain.models import Formula
from domain.services.formula_balancer import FormulaBalancer
from domain.services.formula_reports import FormulaReport, FormulaReportService
from domain.services.version_comparison import (
    VersionComparison,
    VersionComparisonService,
    version_families,
)
from infrastructure.auth.session_provider import SessionProvider
from infrastructure.persistence.excel_exporter import ExcelExporter
from infrastructure.persistence.json_repository import JSONFormulaRepository
from infrastructure.persistence.reference_importer import ImportResult, ReferenceImportService
from infrastructure.persistence.reference_repository import (
    IMPORT_MODE_MERGE,
    JSONReferenceRepository,
)


class SaveFormulaUseCase:
    """Save the current formula for the signed-in organization."""

    def __init__(
        self,
        repository: JSONFormulaRepository,
        session: SessionProvider,
        balancer: FormulaBalancer,
    ) -> None:
        self._repository = repository
        self._session = session
        self._balancer = balancer

    def execute(self, formula: Formula) -> Formula:
        """Save formula.

        The QSP line is recomputed and lines sorted before writing, so a
        stored formula always satisfies the balancing rules.

        Returns:
            Stored formula (with id and timestamps)
        """
        organization_id = self._session.organization_id()
        lines = self._balancer.sort_by_phase(
            self._balancer.recompute_qsp(formula.lines, formula.total_weight)
        )
        return self._repository.save(organization_id, formula.with_lines(lines))


class LoadFormulaUseCase:
    """Load a stored formula."""

    def __init__(self, repository: JSONFormulaRepository, session: SessionProvider) -> None:
        self._repository = repository
        self._session = session

    def execute(self, formula_id: int) -> Formula:
        return self._repository.get(self._session.organization_id(), formula_id)


class ListFormulasUseCase:
    """List stored formulas, most recent first."""

    def __init__(self, repository: JSONFormulaRepository, session: SessionProvider) -> None:
        self._repository = repository
        self._session = session

    def execute(self) -> List[Formula]:
        return self._repository.list(self._session.organization_id())


class DeleteFormulaUseCase:
    """Delete a stored formula."""

    def __init__(self, repository: JSONFormulaRepository, session: SessionProvider) -> None:
        self._repository = repository
        self._session = session

    def execute(self, formula_id: int) -> None:
        organization_id = self._session.organization_id()
        self._repository.delete(organization_id, formula_id)
        logging.info("Deleted formula id=%s org=%s", formula_id, organization_id)


class SetActiveVersionUseCase:
    """Mark a stored version as the one used for production."""

    def __init__(self, repository: JSONFormulaRepository, session: SessionProvider) -> None:
        self._repository = repository
        self._session = session

    def execute(self, formula_id: int) -> Formula:
        organization_id = self._session.organization_id()
        formula = self._repository.set_active_version(organization_id, formula_id)
        logging.info(
            "Active version of %r is now id=%s org=%s", formula.name, formula_id, organization_id
        )
        return formula


class CompareVersionsUseCase:
    """Compare the stored versions of one formula name."""

    def __init__(
        self,
        repository: JSONFormulaRepository,
        session: SessionProvider,
        comparison_service: VersionComparisonService,
    ) -> None:
        self._repository = repository
        self._session = session
        self._comparison_service = comparison_service

    def families(self) -> Dict[str, List[Formula]]:
        """Formula names with at least two stored versions."""
        return version_families(self._repository.list(self._session.organization_id()))

    def execute(self, name: str, reference_id: Optional[int] = None) -> VersionComparison:
        """Compare every version of a formula name.

        Raises:
            FormulaNotFoundError: If the name has fewer than two versions
        """
        versions = self.families().get(name)
        if not versions:
            raise FormulaNotFoundError(f"No versions to compare for {name!r}")
        return self._comparison_service.compare(versions, reference_id=reference_id)


class ImportReferenceDataUseCase:
    """Import the reference workbook (ingredients, allergens, IFRA, tox)."""

    def __init__(
        self,
        importer: ReferenceImportService,
        repository: JSONReferenceRepository,
        session: SessionProvider,
    ) -> None:
        self._importer = importer
        self._repository = repository
        self._session = session

    def execute(self, path: str, mode: str = IMPORT_MODE_MERGE) -> tuple[Dict[str, int], ImportResult]:
        """Import workbook.

        Args:
            path: ``.xlsx`` file
            mode: ``merge`` or ``replace``

        Returns:
            (records written per table, parse result with skipped rows)
        """
        organization_id = self._session.organization_id()
        result = self._importer.load_workbook(path)
        counts = self._repository.apply_import(organization_id, result.data, mode=mode)
        if result.skipped:
            logging.warning(
                "Reference import skipped %s rows: %s", len(result.skipped), result.warnings[:20]
            )
        return counts, result


class BuildFormulaReportUseCase:
    """Compute totals, INCI list, allergens and IFRA certificate for a formula."""

    def __init__(
        self,
        report_service: FormulaReportService,
        reference_repository: JSONReferenceRepository,
        session: SessionProvider,
    ) -> None:
        self._report_service = report_service
        self._reference_repository = reference_repository
        self._session = session

    def execute(self, formula: Formula) -> FormulaReport:
        reference = self._reference_repository.load(self._session.organization_id())
        return self._report_service.build_report(
            formula,
            ingredients=reference.ingredients,
            allergens=reference.allergens,
            ifra_limits=reference.ifra_limits,
        )


class ExportFormulaUseCase:
    """Export formula to Excel."""

    def __init__(
        self,
        build_report: BuildFormulaReportUseCase,
        exporter: ExcelExporter,
    ) -> None:
        self._build_report = build_report
        self._exporter = exporter

    def execute(self, formula: Formula, output_path: Path | str) -> None:
        """Export formula to Excel.

        Args:
            formula: Formula to export
            output_path: Output file path
        """
        report = self._build_report.execute(formula)
        self._exporter.export_formula(report, output_path)

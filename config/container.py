"""Dependency Injection container.

Provides centralized dependency management for the application.
"""

from typing import Optional

from application.use_cases import (
    BuildFormulaReportUseCase,
    CompareVersionsUseCase,
    DeleteFormulaUseCase,
    ExportFormulaUseCase,
    ImportReferenceDataUseCase,
    ListFormulasUseCase,
    LoadFormulaUseCase,
    SaveFormulaUseCase,
    SetActiveVersionUseCase,
)
from config.settings import Settings
from domain.services.formula_balancer import FormulaBalancer
from domain.services.formula_reports import FormulaReportService
from domain.services.version_comparison import VersionComparisonService
from infrastructure.auth.session_provider import EnvSessionProvider, SessionProvider
from infrastructure.persistence.excel_exporter import ExcelExporter
from infrastructure.persistence.json_repository import JSONFormulaRepository
from infrastructure.persistence.reference_importer import ReferenceImportService
from infrastructure.persistence.reference_repository import JSONReferenceRepository


class Container:
    """Dependency injection container.

    Provides singleton instances of services and use cases.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_provider: Optional[SessionProvider] = None,
    ) -> None:
        """Initialize container.

        Args:
            settings: Application settings (if None, read from environment)
            session_provider: Session provider (if None, identity comes from settings)
        """
        self._settings = settings or Settings.from_env()
        self._session_provider = session_provider

        # Lazy-initialized singletons
        self._formula_repository: Optional[JSONFormulaRepository] = None
        self._reference_repository: Optional[JSONReferenceRepository] = None
        self._excel_exporter: Optional[ExcelExporter] = None
        self._reference_importer: Optional[ReferenceImportService] = None

        self._formula_balancer: Optional[FormulaBalancer] = None
        self._report_service: Optional[FormulaReportService] = None
        self._version_comparison: Optional[VersionComparisonService] = None

        self._save_formula_use_case: Optional[SaveFormulaUseCase] = None
        self._load_formula_use_case: Optional[LoadFormulaUseCase] = None
        self._list_formulas_use_case: Optional[ListFormulasUseCase] = None
        self._delete_formula_use_case: Optional[DeleteFormulaUseCase] = None
        self._set_active_version_use_case: Optional[SetActiveVersionUseCase] = None
        self._compare_versions_use_case: Optional[CompareVersionsUseCase] = None
        self._import_reference_use_case: Optional[ImportReferenceDataUseCase] = None
        self._build_report_use_case: Optional[BuildFormulaReportUseCase] = None
        self._export_formula_use_case: Optional[ExportFormulaUseCase] = None

    @property
    def settings(self) -> Settings:
        return self._settings

    # Infrastructure
    @property
    def session_provider(self) -> SessionProvider:
        if self._session_provider is None:
            self._session_provider = EnvSessionProvider(self._settings)
        return self._session_provider

    @property
    def formula_repository(self) -> JSONFormulaRepository:
        """Get JSON formula repository."""
        if self._formula_repository is None:
            self._formula_repository = JSONFormulaRepository(
                base_directory=self._settings.data_dir
            )
        return self._formula_repository

    @property
    def reference_repository(self) -> JSONReferenceRepository:
        if self._reference_repository is None:
            self._reference_repository = JSONReferenceRepository(
                base_directory=self._settings.data_dir
            )
        return self._reference_repository

    @property
    def excel_exporter(self) -> ExcelExporter:
        """Get Excel exporter."""
        if self._excel_exporter is None:
            self._excel_exporter = ExcelExporter()
        return self._excel_exporter

    @property
    def reference_importer(self) -> ReferenceImportService:
        """Get reference workbook import service."""
        if self._reference_importer is None:
            self._reference_importer = ReferenceImportService()
        return self._reference_importer

    # Domain Services
    @property
    def formula_balancer(self) -> FormulaBalancer:
        if self._formula_balancer is None:
            self._formula_balancer = FormulaBalancer()
        return self._formula_balancer

    @property
    def report_service(self) -> FormulaReportService:
        if self._report_service is None:
            self._report_service = FormulaReportService(self.formula_balancer)
        return self._report_service

    @property
    def version_comparison(self) -> VersionComparisonService:
        if self._version_comparison is None:
            self._version_comparison = VersionComparisonService()
        return self._version_comparison

    # Use Cases
    @property
    def save_formula(self) -> SaveFormulaUseCase:
        if self._save_formula_use_case is None:
            self._save_formula_use_case = SaveFormulaUseCase(
                repository=self.formula_repository,
                session=self.session_provider,
                balancer=self.formula_balancer,
            )
        return self._save_formula_use_case

    @property
    def load_formula(self) -> LoadFormulaUseCase:
        if self._load_formula_use_case is None:
            self._load_formula_use_case = LoadFormulaUseCase(
                self.formula_repository, self.session_provider
            )
        return self._load_formula_use_case

    @property
    def list_formulas(self) -> ListFormulasUseCase:
        if self._list_formulas_use_case is None:
            self._list_formulas_use_case = ListFormulasUseCase(
                self.formula_repository, self.session_provider
            )
        return self._list_formulas_use_case

    @property
    def delete_formula(self) -> DeleteFormulaUseCase:
        if self._delete_formula_use_case is None:
            self._delete_formula_use_case = DeleteFormulaUseCase(
                self.formula_repository, self.session_provider
            )
        return self._delete_formula_use_case

    @property
    def set_active_version(self) -> SetActiveVersionUseCase:
        if self._set_active_version_use_case is None:
            self._set_active_version_use_case = SetActiveVersionUseCase(
                self.formula_repository, self.session_provider
            )
        return self._set_active_version_use_case

    @property
    def compare_versions(self) -> CompareVersionsUseCase:
        """Get version comparison use case."""
        if self._compare_versions_use_case is None:
            self._compare_versions_use_case = CompareVersionsUseCase(
                repository=self.formula_repository,
                session=self.session_provider,
                comparison_service=self.version_comparison,
            )
        return self._compare_versions_use_case

    @property
    def import_reference_data(self) -> ImportReferenceDataUseCase:
        """Get reference data import use case."""
        if self._import_reference_use_case is None:
            self._import_reference_use_case = ImportReferenceDataUseCase(
                importer=self.reference_importer,
                repository=self.reference_repository,
                session=self.session_provider,
            )
        return self._import_reference_use_case

    @property
    def build_report(self) -> BuildFormulaReportUseCase:
        if self._build_report_use_case is None:
            self._build_report_use_case = BuildFormulaReportUseCase(
                report_service=self.report_service,
                reference_repository=self.reference_repository,
                session=self.session_provider,
            )
        return self._build_report_use_case

    @property
    def export_formula(self) -> ExportFormulaUseCase:
        """Get export formula use case."""
        if self._export_formula_use_case is None:
            self._export_formula_use_case = ExportFormulaUseCase(
                build_report=self.build_report,
                exporter=self.excel_exporter,
            )
        return self._export_formula_use_case

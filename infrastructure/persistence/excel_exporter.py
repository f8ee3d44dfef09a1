"""Excel export functionality.

Exports a formula with its totals, INCI list, allergens and IFRA
certificate to a formatted workbook.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from config.constants import EXCEL_HEADER_COLOR, EXCEL_QSP_COLOR
from domain.exceptions import ExportError
from domain.services.formula_reports import FormulaReport

FORMULA_HEADERS = [
    "Phase",
    "Code",
    "Matière première",
    "INCI",
    "Fournisseur",
    "%",
    "g",
    "Prix (€/kg)",
    "Coût (€/kg)",
    "QSP",
]


def _number(value: Optional[Decimal], places: int = 2) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), places)


class ExcelExporter:
    """Export formulas to Excel format."""

    def export_formula(self, report: FormulaReport, output_path: Path | str) -> None:
        """Export a formula report to Excel.

        Args:
            report: Formula plus computed totals and regulatory tables
            output_path: Path to save Excel file

        Raises:
            ExportError: If export fails
        """
        try:
            wb = Workbook()
            wb.remove(wb.active)

            self._create_formula_sheet(wb, report)
            self._create_phase_totals_sheet(wb, report)
            self._create_summary_sheet(wb, report)
            self._create_inci_sheet(wb, report)
            self._create_allergens_sheet(wb, report)
            self._create_ifra_sheet(wb, report)

            wb.save(output_path)

        except Exception as exc:
            raise ExportError(f"Failed to export to Excel: {exc}") from exc

    def _create_formula_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("Formule")
        formula = report.formula

        ws.append(FORMULA_HEADERS)
        self._style_header(ws, len(FORMULA_HEADERS))

        qsp_fill = PatternFill(start_color=EXCEL_QSP_COLOR, end_color=EXCEL_QSP_COLOR, fill_type="solid")
        for line in formula.lines:
            ws.append(
                [
                    line.phase,
                    line.ingredient_code,
                    line.ingredient_name,
                    report.inci_for(line.ingredient_code),
                    report.supplier_for(line.ingredient_code),
                    _number(line.percent),
                    _number(line.grams),
                    _number(line.price_per_kilo),
                    _number(line.cost_per_kilo, 4),
                    "Oui" if line.is_qsp else "",
                ]
            )
            if line.is_qsp:
                for cell in ws[ws.max_row]:
                    cell.fill = qsp_fill

        summary = report.summary
        ws.append(
            [
                "TOTAL",
                "",
                "",
                "",
                "",
                _number(summary.total_percent),
                _number(formula.total_weight),
                "",
                _number(summary.cost_per_kilo, 4),
                "",
            ]
        )
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)

        self._autosize(ws)

    def _create_phase_totals_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("Totaux par phase")
        headers = ["Phase", "Lignes", "%", "g"]
        ws.append(headers)
        self._style_header(ws, len(headers))

        for total in report.summary.phase_totals:
            ws.append([total.label, total.count, _number(total.percent_sum), _number(total.grams_sum)])

        self._autosize(ws)

    def _create_summary_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("Résumé")
        formula = report.formula
        summary = report.summary

        rows = [
            ("Formule", formula.display_name),
            ("Formulateur", formula.formulator),
            ("Poids total (g)", _number(summary.total_weight)),
            ("Total hors QSP (%)", _number(summary.percent_non_qsp)),
            ("QSP (%)", _number(summary.qsp_percent) if summary.has_qsp else "Aucune"),
            ("Total (%)", _number(summary.total_percent)),
            ("Prix au kilo (€)", _number(summary.cost_per_kilo, 4)),
            ("Dépassement 100 %", "Oui" if summary.is_over_limit else "Non"),
        ]
        notes = formula.notes
        if not notes.is_empty():
            rows.extend(
                [
                    ("Protocole", notes.protocol),
                    ("Aspect", notes.aspect),
                    ("Odeur", notes.odour),
                    ("pH", notes.ph),
                    ("Microscope", notes.microscope),
                    ("Remarque", notes.remark),
                    ("Conditionnement", notes.packaging),
                    ("Conclusion", notes.conclusion),
                ]
            )
        stability = formula.stability
        if stability.is_running:
            rows.append(("Début stabilité", stability.start_date.strftime("%d/%m/%Y")))
            rows.extend((f"Stabilité {day.day}", day.notes) for day in stability.days)
        for label, value in rows:
            ws.append([label, value])
            ws.cell(ws.max_row, 1).font = Font(bold=True)

        self._autosize(ws)

    def _create_inci_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("INCI")
        headers = ["INCI", "%"]
        ws.append(headers)
        self._style_header(ws, len(headers))

        for entry in report.inci:
            ws.append([entry.inci, _number(entry.percent, 4)])
        if not report.inci:
            ws.append(["Aucune donnée INCI pour les matières de cette formule", None])

        self._autosize(ws)

    def _create_allergens_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("Allergènes")
        headers = ["Allergène", "% dans la formule", "Matière", "% matière", "% allergène"]
        ws.append(headers)
        self._style_header(ws, len(headers))

        for entry in report.allergens:
            ws.append([entry.allergen_name, _number(entry.total_percent, 6), "", None, None])
            ws.cell(ws.max_row, 1).font = Font(bold=True)
            for source in entry.sources:
                ws.append(
                    [
                        "",
                        None,
                        source.material_name,
                        _number(source.line_percent, 4),
                        _number(source.allergen_percent, 4),
                    ]
                )
        if not report.allergens:
            ws.append(["Aucun allergène déclaré", None, "", None, None])

        self._autosize(ws)

    def _create_ifra_sheet(self, wb: Workbook, report: FormulaReport) -> None:
        ws = wb.create_sheet("IFRA")
        certificate = report.ifra
        headers = ["Catégorie", "Description", "Concentration max (%)"]
        ws.append(headers)
        self._style_header(ws, len(headers))

        for row in certificate.rows:
            value = _number(row.max_percent, 4) if row.max_percent is not None else "Non limité"
            ws.append([row.category, row.description, value])

        ws.append([])
        ws.append(["Matières couvertes", ", ".join(certificate.matched_codes) or "Aucune"])

        self._autosize(ws)

    def _style_header(self, ws: Worksheet, width: int) -> None:
        header_fill = PatternFill(start_color=EXCEL_HEADER_COLOR, end_color=EXCEL_HEADER_COLOR, fill_type="solid")
        for col_num in range(1, width + 1):
            cell = ws.cell(1, col_num)
            cell.fill = header_fill
            cell.font = Font(bold=True, color="FFFFFF")
            cell.alignment = Alignment(horizontal="center", vertical="center")

    def _autosize(self, ws: Worksheet) -> None:
        for column in ws.columns:
            max_length = 0
            column_letter = get_column_letter(column[0].column)
            for cell in column:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

"""Main window of the formulator.

Holds the formula, notes and version comparison tabs and forwards every
edit to the formula presenter; the window only renders presenter rows and
reports status messages.
"""

from pathlib import Path
from typing import Any, Dict, Optional
import logging

from PySide6.QtCore import Qt
from PySide6.QtGui import QBrush, QColor, QFont
from PySide6.QtWidgets import (
    QFileDialog,
    QLabel,
    QMainWindow,
    QMessageBox,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from config.constants import (
    APP_WINDOW_TITLE,
    COMPARE_LESS_COLOR,
    COMPARE_MORE_COLOR,
    DEFAULT_WINDOW_HEIGHT,
    DEFAULT_WINDOW_WIDTH,
    LINES_CODE_COLUMN,
    LINES_COST_COLUMN,
    LINES_GRAMS_COLUMN,
    LINES_HEADERS,
    LINES_NAME_COLUMN,
    LINES_PERCENT_COLUMN,
    LINES_PHASE_COLUMN,
    LINES_PRICE_COLUMN,
    LINES_QSP_COLUMN,
    NOTES_FIELDS,
    PHASE_KEY_ROLE,
    QSP_ROW_ROLE,
    QSP_TEXT_COLOR,
    STOCK_INDICATOR_COLORS,
)
from domain.services.version_comparison import TREND_LESS, TREND_MORE
from infrastructure.persistence.reference_repository import IMPORT_MODE_MERGE, IMPORT_MODE_REPLACE
from ui.formatters import fmt_decimal, fmt_input, fmt_money, fmt_percent
from ui.presenters.formula_presenter import FormulaPresenter
from ui.tabs.compare_tab import build_compare_tab_ui
from ui.tabs.formula_tab import build_formula_tab_ui
from ui.tabs.notes_tab import build_notes_tab_ui

STATUS_MESSAGES = {
    "row_invalid": "Sélectionnez une ligne valide.",
    "qsp_locked": "La ligne QSP est calculée automatiquement.",
    "negative_weight": "Le poids total ne peut pas être négatif.",
    "invalid_value": "Valeur invalide.",
    "name_required": "Le nom de la formule est obligatoire.",
    "not_authenticated": "Aucune session : renseignez FORMULATOR_USER et FORMULATOR_ORGANIZATION.",
    "not_found": "Formule introuvable.",
    "save_failed": "Impossible d'enregistrer la formule.",
    "load_failed": "Impossible d'ouvrir la formule.",
    "export_failed": "Impossible d'exporter la formule.",
    "not_saved": "Enregistrez la formule avant de choisir la version de production.",
    "stability_not_started": "Démarrez le suivi de stabilité avant de saisir des notes.",
}


class MainWindow(QMainWindow):
    def __init__(self, presenter: Optional[FormulaPresenter] = None) -> None:
        super().__init__()

        self.presenter = presenter if presenter is not None else FormulaPresenter()
        self.last_path = ""
        self._compare_families: Dict[str, list] = {}

        self.setWindowTitle(APP_WINDOW_TITLE)
        self.resize(DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT)

        self._build_ui()
        self._refresh_saved_formulas()
        self._refresh_formula_views()
        self._refresh_compare_families()

    def _build_ui(self) -> None:
        central = QWidget(self)
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        self.tabs = QTabWidget()
        self.formula_tab = QWidget()
        build_formula_tab_ui(self)
        self.tabs.addTab(self.formula_tab, "Formulation")
        self.notes_tab = QWidget()
        build_notes_tab_ui(self)
        self.tabs.addTab(self.notes_tab, "Notes et stabilité")
        self.compare_tab = QWidget()
        build_compare_tab_ui(self)
        self.tabs.addTab(self.compare_tab, "Comparer les versions")
        main_layout.addWidget(self.tabs)

        self.status_label = QLabel("")
        self.status_label.setStyleSheet("color: gray; padding: 4px;")
        main_layout.addWidget(self.status_label)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _refresh_formula_views(self) -> None:
        """Re-render header, lines, phase totals and summary from the presenter."""
        formula = self.presenter.formula
        self.formula_name_input.setText(formula.name)
        self.formula_version_input.setText(formula.version)
        self.formulator_input.setText(formula.formulator)
        self.total_weight_input.setText(fmt_input(formula.total_weight))
        self._set_window_title(formula.display_name if formula.name else "")

        rows = self.presenter.get_ui_rows()
        table = self.lines_table
        table.blockSignals(True)
        table.setRowCount(len(rows))
        for row_idx, row in enumerate(rows):
            self._populate_line_row(row_idx, row)
        table.blockSignals(False)

        totals = self.presenter.get_phase_totals()
        self.phase_totals_table.setRowCount(len(totals))
        for row_idx, total in enumerate(totals):
            values = [
                total["label"],
                str(total["count"]),
                fmt_percent(total["percent"]),
                fmt_decimal(total["grams"]),
            ]
            for col, value in enumerate(values):
                item = QTableWidgetItem(value)
                item.setData(PHASE_KEY_ROLE, total["phase_key"])
                if col > 0:
                    item.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                if total["is_qsp"]:
                    item.setForeground(QBrush(QColor(QSP_TEXT_COLOR)))
                self.phase_totals_table.setItem(row_idx, col, item)

        self._refresh_summary()
        self._refresh_notes()

    def _populate_line_row(self, row_idx: int, row: Dict[str, Any]) -> None:
        is_qsp = row["is_qsp"]
        values = {
            LINES_PHASE_COLUMN: row["phase"],
            LINES_CODE_COLUMN: row["ingredient_code"],
            LINES_NAME_COLUMN: row["ingredient_name"],
            LINES_PERCENT_COLUMN: fmt_input(row["percent"]),
            LINES_GRAMS_COLUMN: fmt_input(row["grams"]),
            LINES_PRICE_COLUMN: fmt_input(row["price_per_kilo"]),
            LINES_COST_COLUMN: fmt_money(row["cost_per_kilo"], decimals=4) if row["cost_per_kilo"] is not None else "",
            LINES_QSP_COLUMN: "",
        }
        background = QBrush(QColor(row["background"]))
        for col in range(len(LINES_HEADERS)):
            item = QTableWidgetItem(values[col])
            item.setBackground(background)
            item.setData(QSP_ROW_ROLE, is_qsp)
            item.setData(PHASE_KEY_ROLE, row["phase_key"])
            if col in (LINES_PERCENT_COLUMN, LINES_GRAMS_COLUMN, LINES_PRICE_COLUMN, LINES_COST_COLUMN):
                item.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)

            locked = col == LINES_COST_COLUMN or (
                is_qsp and col in (LINES_PERCENT_COLUMN, LINES_GRAMS_COLUMN)
            )
            if col == LINES_QSP_COLUMN:
                item.setFlags(Qt.ItemIsEnabled | Qt.ItemIsSelectable | Qt.ItemIsUserCheckable)
                item.setCheckState(Qt.Checked if is_qsp else Qt.Unchecked)
            elif locked:
                item.setFlags(item.flags() & ~Qt.ItemIsEditable)
            if is_qsp and col in (LINES_PERCENT_COLUMN, LINES_GRAMS_COLUMN):
                item.setForeground(QBrush(QColor(QSP_TEXT_COLOR)))
                item.setToolTip("Calculé automatiquement (QSP)")
            if col == LINES_CODE_COLUMN and row["stock_indicator"]:
                color = STOCK_INDICATOR_COLORS.get(row["stock_indicator"])
                if color:
                    item.setForeground(QBrush(QColor(color)))
            if col == LINES_NAME_COLUMN and row["notes"]:
                item.setToolTip(row["notes"])
            self.lines_table.setItem(row_idx, col, item)

    def _refresh_summary(self) -> None:
        summary = self.presenter.get_summary()
        total_color = "#dc2626" if summary.is_over_limit else "#16a34a"
        parts = [
            f"<b>Total :</b> <span style='color:{total_color}'>{fmt_percent(summary.total_percent)}</span>",
            f"Hors QSP : {fmt_percent(summary.percent_non_qsp)}",
            (
                f"QSP : <span style='color:{QSP_TEXT_COLOR}'>{fmt_percent(summary.qsp_percent)}</span>"
                if summary.has_qsp
                else "QSP : aucune ligne"
            ),
            f"Poids total : {fmt_decimal(summary.total_weight)} g",
            f"Prix au kilo : {fmt_money(summary.cost_per_kilo)}",
        ]
        if summary.is_over_limit:
            parts.append("<b style='color:#dc2626'>La formule dépasse 100 %.</b>")
        self.summary_label.setText("<br>".join(parts))

    def _refresh_saved_formulas(self) -> None:
        selector = self.saved_formulas_selector
        current_id = self.presenter.formula.id
        selector.blockSignals(True)
        selector.clear()
        for entry in self.presenter.list_formulas():
            label = entry["display_name"]
            if entry["is_active"]:
                label += " (production)"
            selector.addItem(label, entry["id"])
            if entry["id"] == current_id:
                selector.setCurrentIndex(selector.count() - 1)
        selector.blockSignals(False)

    def _refresh_notes(self) -> None:
        formula = self.presenter.formula
        self.improvement_goal_input.setText(formula.improvement_goal)
        for key, _label in NOTES_FIELDS:
            editor = self.notes_inputs[key]
            editor.blockSignals(True)
            editor.setPlainText(getattr(formula.notes, key))
            editor.blockSignals(False)

        status = self.presenter.get_stability_status()
        if status["is_running"]:
            self.stability_status_label.setText(
                f"Démarrée le {status['start_date'].astimezone().strftime('%d/%m/%Y %H:%M')} "
                f"({status['elapsed_days']} j, étape {status['current_day']})"
            )
        else:
            self.stability_status_label.setText("Suivi de stabilité non démarré.")
        for day, notes in status["days"]:
            editor = self.stability_inputs[day]
            editor.setText(notes)
            editor.setEnabled(status["is_running"])
        self.stop_stability_button.setEnabled(status["is_running"])

    def _refresh_compare_families(self) -> None:
        selector = self.compare_family_selector
        current = selector.currentText()
        self._compare_families = self.presenter.get_version_families()
        selector.blockSignals(True)
        selector.clear()
        selector.addItems(list(self._compare_families))
        if current in self._compare_families:
            selector.setCurrentText(current)
        selector.blockSignals(False)
        self.on_compare_family_changed()

    def _render_comparison(self, name: str, reference_id: Optional[int]) -> None:
        comparison = self.presenter.compare_versions(name, reference_id) if name else None
        params_table = self.compare_parameters_table
        lines_table = self.compare_lines_table
        if comparison is None:
            params_table.setRowCount(0)
            lines_table.setRowCount(0)
            return

        headers = [f"V{f.version or i + 1}" for i, f in enumerate(comparison.versions)]
        bold = QFont()
        bold.setBold(True)
        less = QBrush(QColor(COMPARE_LESS_COLOR))
        more = QBrush(QColor(COMPARE_MORE_COLOR))

        params_table.setColumnCount(len(headers) + 1)
        params_table.setHorizontalHeaderLabels(["Paramètre"] + headers)
        params_table.setRowCount(len(comparison.parameters))
        for row_idx, parameter in enumerate(comparison.parameters):
            params_table.setItem(row_idx, 0, QTableWidgetItem(parameter.label))
            for col, value in enumerate(parameter.values):
                item = QTableWidgetItem(value)
                if parameter.differs_from_reference[col]:
                    item.setBackground(less)
                if col == comparison.reference_index:
                    item.setFont(bold)
                params_table.setItem(row_idx, col + 1, item)

        lines_table.setColumnCount(len(headers) + 1)
        lines_table.setHorizontalHeaderLabels(["Ingrédient"] + headers)
        lines_table.setRowCount(len(comparison.lines))
        for row_idx, line in enumerate(comparison.lines):
            lines_table.setItem(row_idx, 0, QTableWidgetItem(line.display_name))
            for col, percent in enumerate(line.percents):
                item = QTableWidgetItem(fmt_percent(percent) if percent is not None else "")
                item.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                trend = line.trends[col]
                if trend == TREND_MORE:
                    item.setBackground(more)
                elif trend == TREND_LESS:
                    item.setBackground(less)
                if line.changed[col]:
                    item.setToolTip("Diffère de la référence (phase, % ou g)")
                if col == comparison.reference_index:
                    item.setFont(bold)
                lines_table.setItem(row_idx, col + 1, item)
        lines_table.resizeColumnsToContents()

    def _set_window_title(self, suffix: str) -> None:
        self.setWindowTitle(f"{APP_WINDOW_TITLE} - {suffix}" if suffix else APP_WINDOW_TITLE)

    def _report(self, ok: bool, error: Optional[str], success_message: str = "") -> bool:
        if ok:
            if success_message:
                self.status_label.setText(success_message)
        else:
            self.status_label.setText(STATUS_MESSAGES.get(error or "", error or ""))
        return ok

    def _selected_row(self) -> int:
        indexes = self.lines_table.selectionModel().selectedRows()
        return indexes[0].row() if indexes else -1

    # ------------------------------------------------------------------
    # Line edits
    # ------------------------------------------------------------------

    def on_line_item_changed(self, item: QTableWidgetItem) -> None:
        """Route a cell edit to the matching presenter operation."""
        row = item.row()
        col = item.column()
        text = item.text()

        if col == LINES_PHASE_COLUMN:
            ok, error = self.presenter.set_phase_safe(row, text)
        elif col == LINES_CODE_COLUMN:
            ok, error = self.presenter.select_ingredient_safe(row, text)
        elif col == LINES_NAME_COLUMN:
            ok, error = self.presenter.set_line_fields_safe(row, ingredient_name=text.strip())
        elif col == LINES_PERCENT_COLUMN:
            ok, error = self.presenter.set_percent_safe(row, text)
        elif col == LINES_GRAMS_COLUMN:
            ok, error = self.presenter.set_grams_safe(row, text)
        elif col == LINES_PRICE_COLUMN:
            ok, error = self.presenter.set_line_fields_safe(row, price_per_kilo=text or None)
        elif col == LINES_QSP_COLUMN:
            ok, error = self.presenter.set_qsp_safe(row, item.checkState() == Qt.Checked)
        else:
            return

        self._report(ok, error)
        self._refresh_formula_views()

    def on_add_line_clicked(self) -> None:
        row = self.presenter.add_line()
        self._refresh_formula_views()
        self.lines_table.selectRow(row)
        self.lines_table.editItem(self.lines_table.item(row, LINES_CODE_COLUMN))

    def on_remove_line_clicked(self) -> None:
        ok, error = self.presenter.remove_line_safe(self._selected_row())
        if self._report(ok, error, "Ligne supprimée."):
            self._refresh_formula_views()

    def on_move_line_clicked(self, direction: int) -> None:
        row = self._selected_row()
        ok, error = self.presenter.move_line_safe(row, direction)
        if self._report(ok, error):
            self._refresh_formula_views()
            self.lines_table.selectRow(row + (1 if direction > 0 else -1))

    def on_total_weight_edited(self) -> None:
        ok, error = self.presenter.set_total_weight_safe(self.total_weight_input.text())
        self._report(ok, error)
        self._refresh_formula_views()

    def on_header_edited(self) -> None:
        self.presenter.set_metadata(
            name=self.formula_name_input.text().strip(),
            version=self.formula_version_input.text().strip(),
            formulator=self.formulator_input.text().strip(),
        )
        self._set_window_title(self.presenter.formula.display_name if self.presenter.formula_name else "")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def on_new_formula_clicked(self) -> None:
        self.presenter.new_formula()
        self._refresh_formula_views()
        self.status_label.setText("Nouvelle formule.")

    def on_save_formula_clicked(self) -> None:
        self.on_header_edited()
        self.on_notes_edited()
        ok, error = self.presenter.save_safe()
        if self._report(ok, error, f"Formule enregistrée : {self.presenter.formula.display_name}"):
            self._refresh_saved_formulas()
            self._refresh_formula_views()
            self._refresh_compare_families()

    def on_open_formula_clicked(self) -> None:
        formula_id = self.saved_formulas_selector.currentData()
        if formula_id is None:
            self.status_label.setText("Aucune formule enregistrée.")
            return
        ok, error = self.presenter.load_safe(int(formula_id))
        if self._report(ok, error, "Formule chargée."):
            self._refresh_formula_views()

    def on_delete_formula_clicked(self) -> None:
        formula_id = self.saved_formulas_selector.currentData()
        if formula_id is None:
            return
        answer = QMessageBox.question(
            self,
            "Supprimer la formule",
            f"Supprimer « {self.saved_formulas_selector.currentText()} » ?",
        )
        if answer != QMessageBox.Yes:
            return
        ok, error = self.presenter.delete_formula_safe(int(formula_id))
        if self._report(ok, error, "Formule supprimée."):
            self._refresh_saved_formulas()
            self._refresh_compare_families()

    def on_set_active_version_clicked(self) -> None:
        ok, error = self.presenter.set_active_version_safe()
        if self._report(ok, error, f"Version de production : {self.presenter.formula.display_name}"):
            self._refresh_saved_formulas()
            self._refresh_compare_families()

    # ------------------------------------------------------------------
    # Notes and stability
    # ------------------------------------------------------------------

    def on_notes_edited(self) -> None:
        self.presenter.set_notes(
            **{key: self.notes_inputs[key].toPlainText() for key, _label in NOTES_FIELDS}
        )
        self.presenter.set_metadata(improvement_goal=self.improvement_goal_input.text().strip())

    def on_start_stability_clicked(self) -> None:
        if self.presenter.formula.stability.is_running:
            answer = QMessageBox.question(
                self,
                "Stabilité",
                "Un suivi est déjà en cours. Le redémarrer efface les notes saisies. Continuer ?",
            )
            if answer != QMessageBox.Yes:
                return
        self.presenter.start_stability()
        self._refresh_notes()

    def on_stop_stability_clicked(self) -> None:
        answer = QMessageBox.question(
            self,
            "Stabilité",
            "Êtes-vous sûr de vouloir arrêter le suivi de stabilité ?",
        )
        if answer != QMessageBox.Yes:
            return
        self.presenter.stop_stability()
        self._refresh_notes()

    def on_stability_day_edited(self, day: str) -> None:
        ok, error = self.presenter.set_stability_notes_safe(day, self.stability_inputs[day].text())
        self._report(ok, error)

    # ------------------------------------------------------------------
    # Version comparison
    # ------------------------------------------------------------------

    def on_compare_family_changed(self, *_args: Any) -> None:
        name = self.compare_family_selector.currentText()
        selector = self.compare_reference_selector
        selector.blockSignals(True)
        selector.clear()
        for entry in self._compare_families.get(name, []):
            label = f"V{entry['version']}" if entry["version"] else f"#{entry['id']}"
            if entry["is_active"]:
                label += " (production)"
            selector.addItem(label, entry["id"])
        selector.blockSignals(False)
        self._render_comparison(name, selector.currentData())

    def on_compare_reference_changed(self, *_args: Any) -> None:
        self._render_comparison(
            self.compare_family_selector.currentText(),
            self.compare_reference_selector.currentData(),
        )

    def on_import_reference_clicked(self) -> None:
        """Import ingredients, allergens, IFRA limits and tox tests from Excel."""
        path, _ = QFileDialog.getOpenFileName(
            self,
            "Importer le référentiel",
            self.last_path or "",
            "Fichiers Excel (*.xlsx)",
        )
        if not path:
            return
        self.last_path = path

        answer = QMessageBox.question(
            self,
            "Mode d'import",
            "Remplacer toutes les données existantes ?\n"
            "Non = fusionner (mise à jour par code).",
            QMessageBox.Yes | QMessageBox.No | QMessageBox.Cancel,
            QMessageBox.No,
        )
        if answer == QMessageBox.Cancel:
            return
        mode = IMPORT_MODE_REPLACE if answer == QMessageBox.Yes else IMPORT_MODE_MERGE

        ok, message = self.presenter.import_reference_data_safe(path, mode=mode)
        if not ok:
            QMessageBox.warning(self, "Import impossible", message)
            return
        self.status_label.setText(f"Import terminé : {message}")
        logging.info("Reference import from %s: %s", path, message)

    def on_export_to_excel_clicked(self) -> None:
        """Export current formula, totals and regulatory tables to an Excel file."""
        if not self.presenter.has_lines():
            QMessageBox.information(
                self,
                "Exporter vers Excel",
                "La formule ne contient aucune ligne.",
            )
            return

        default_name = f"{self.presenter.safe_base_name(self.presenter.formula_name)}.xlsx"
        initial_path = (
            str(Path(self.last_path).with_name(default_name)) if self.last_path else default_name
        )
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Exporter la formule vers Excel",
            initial_path,
            "Fichiers Excel (*.xlsx)",
        )
        if not path:
            return
        if not path.lower().endswith(".xlsx"):
            path += ".xlsx"
        self.last_path = path

        ok, error = self.presenter.export_to_excel_safe(path)
        if not ok:
            QMessageBox.critical(
                self,
                "Erreur d'export",
                STATUS_MESSAGES.get(error or "", "Impossible d'exporter le fichier."),
            )
            return
        QMessageBox.information(self, "Exporté", f"Fichier enregistré dans :\n{path}")

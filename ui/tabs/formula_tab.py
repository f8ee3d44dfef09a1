from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QTableWidget,
    QVBoxLayout,
)

from config.constants import LINES_HEADERS
from ui.tabs.table_utils import attach_copy_shortcut, set_formula_column_widths

if TYPE_CHECKING:
    from ui.main_window import MainWindow


def build_formula_tab_ui(self: "MainWindow") -> None:
    """Build the Formula tab UI."""
    layout = QVBoxLayout(self.formula_tab)

    # Stored formulas and file actions.
    file_layout = QHBoxLayout()
    self.new_formula_button = QPushButton("Nouvelle")
    self.saved_formulas_selector = QComboBox()
    self.saved_formulas_selector.setMinimumWidth(260)
    self.open_formula_button = QPushButton("Ouvrir")
    self.delete_formula_button = QPushButton("Supprimer")
    self.save_formula_button = QPushButton("Enregistrer")
    self.set_active_button = QPushButton("Version de production")
    self.import_reference_button = QPushButton("Importer Excel…")
    self.export_excel_button = QPushButton("Exporter Excel")
    file_layout.addWidget(self.new_formula_button)
    file_layout.addWidget(self.saved_formulas_selector, 1)
    file_layout.addWidget(self.open_formula_button)
    file_layout.addWidget(self.delete_formula_button)
    file_layout.addStretch()
    file_layout.addWidget(self.save_formula_button)
    file_layout.addWidget(self.set_active_button)
    file_layout.addWidget(self.import_reference_button)
    file_layout.addWidget(self.export_excel_button)
    layout.addLayout(file_layout)

    # Header: name, version, formulator, batch weight.
    header_layout = QHBoxLayout()
    self.formula_name_input = QLineEdit()
    self.formula_name_input.setPlaceholderText("Nom de la formule Ex.: Crème visage hydratante")
    self.formula_version_input = QLineEdit()
    self.formula_version_input.setPlaceholderText("Version")
    self.formula_version_input.setMaximumWidth(80)
    self.formulator_input = QLineEdit()
    self.formulator_input.setPlaceholderText("Formulateur")
    self.total_weight_input = QLineEdit()
    self.total_weight_input.setAlignment(Qt.AlignRight)
    self.total_weight_input.setMaximumWidth(110)
    header_layout.addWidget(self.formula_name_input, 1)
    header_layout.addWidget(self.formula_version_input)
    header_layout.addWidget(self.formulator_input)
    header_layout.addWidget(QLabel("Poids total (g):"))
    header_layout.addWidget(self.total_weight_input)
    layout.addLayout(header_layout)

    # Formula lines.
    self.lines_table = QTableWidget(0, len(LINES_HEADERS))
    self.lines_table.setHorizontalHeaderLabels(LINES_HEADERS)
    self.lines_table.setEditTriggers(
        QTableWidget.DoubleClicked | QTableWidget.EditKeyPressed | QTableWidget.AnyKeyPressed
    )
    self.lines_table.setSelectionBehavior(QTableWidget.SelectRows)
    self.lines_table.setSelectionMode(QTableWidget.SingleSelection)
    self.lines_table.horizontalHeader().setStretchLastSection(True)
    layout.addWidget(self.lines_table)

    # Line actions.
    buttons_layout = QHBoxLayout()
    self.add_line_button = QPushButton("Ajouter une ligne")
    self.remove_line_button = QPushButton("Supprimer la ligne")
    self.move_up_button = QPushButton("Monter")
    self.move_down_button = QPushButton("Descendre")
    buttons_layout.addWidget(self.add_line_button)
    buttons_layout.addWidget(self.remove_line_button)
    buttons_layout.addWidget(self.move_up_button)
    buttons_layout.addWidget(self.move_down_button)
    buttons_layout.addStretch()
    layout.addLayout(buttons_layout)

    # Phase totals and summary.
    totals_layout = QHBoxLayout()
    self.phase_totals_table = QTableWidget(0, 4)
    self.phase_totals_table.setHorizontalHeaderLabels(["Phase", "Lignes", "%", "g"])
    self.phase_totals_table.setEditTriggers(QTableWidget.NoEditTriggers)
    self.phase_totals_table.setSelectionBehavior(QTableWidget.SelectRows)
    self.phase_totals_table.setMaximumHeight(180)
    totals_layout.addWidget(self.phase_totals_table, 1)

    self.summary_label = QLabel("")
    self.summary_label.setAlignment(Qt.AlignTop | Qt.AlignLeft)
    self.summary_label.setTextFormat(Qt.RichText)
    totals_layout.addWidget(self.summary_label, 1)
    layout.addLayout(totals_layout)

    # Event connections.
    self.new_formula_button.clicked.connect(self.on_new_formula_clicked)
    self.open_formula_button.clicked.connect(self.on_open_formula_clicked)
    self.delete_formula_button.clicked.connect(self.on_delete_formula_clicked)
    self.save_formula_button.clicked.connect(self.on_save_formula_clicked)
    self.set_active_button.clicked.connect(self.on_set_active_version_clicked)
    self.import_reference_button.clicked.connect(self.on_import_reference_clicked)
    self.export_excel_button.clicked.connect(self.on_export_to_excel_clicked)
    self.formula_name_input.editingFinished.connect(self.on_header_edited)
    self.formula_version_input.editingFinished.connect(self.on_header_edited)
    self.formulator_input.editingFinished.connect(self.on_header_edited)
    self.total_weight_input.editingFinished.connect(self.on_total_weight_edited)
    self.lines_table.itemChanged.connect(self.on_line_item_changed)
    self.add_line_button.clicked.connect(self.on_add_line_clicked)
    self.remove_line_button.clicked.connect(self.on_remove_line_clicked)
    self.move_up_button.clicked.connect(lambda: self.on_move_line_clicked(-1))
    self.move_down_button.clicked.connect(lambda: self.on_move_line_clicked(1))

    for table in (self.lines_table, self.phase_totals_table):
        attach_copy_shortcut(table)

    set_formula_column_widths(self.lines_table, self.phase_totals_table)

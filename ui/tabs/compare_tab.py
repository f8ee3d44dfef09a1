from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QTableWidget,
    QVBoxLayout,
)

from ui.tabs.table_utils import attach_copy_shortcut

if TYPE_CHECKING:
    from ui.main_window import MainWindow


def build_compare_tab_ui(self: "MainWindow") -> None:
    """Build the version comparison tab UI."""
    layout = QVBoxLayout(self.compare_tab)

    picker_layout = QHBoxLayout()
    self.compare_family_selector = QComboBox()
    self.compare_family_selector.setMinimumWidth(220)
    self.compare_reference_selector = QComboBox()
    self.refresh_compare_button = QPushButton("Actualiser")
    picker_layout.addWidget(QLabel("Formule :"))
    picker_layout.addWidget(self.compare_family_selector, 1)
    picker_layout.addWidget(QLabel("Référence :"))
    picker_layout.addWidget(self.compare_reference_selector)
    picker_layout.addWidget(self.refresh_compare_button)
    layout.addLayout(picker_layout)

    self.compare_legend_label = QLabel(
        "Vert : plus que la référence. Rouge : moins que la référence."
    )
    self.compare_legend_label.setStyleSheet("color: gray;")
    layout.addWidget(self.compare_legend_label)

    self.compare_parameters_table = QTableWidget(0, 0)
    self.compare_parameters_table.setEditTriggers(QTableWidget.NoEditTriggers)
    self.compare_parameters_table.setMaximumHeight(220)
    layout.addWidget(self.compare_parameters_table)

    self.compare_lines_table = QTableWidget(0, 0)
    self.compare_lines_table.setEditTriggers(QTableWidget.NoEditTriggers)
    layout.addWidget(self.compare_lines_table, 1)

    # Event connections.
    self.compare_family_selector.currentIndexChanged.connect(self.on_compare_family_changed)
    self.compare_reference_selector.currentIndexChanged.connect(self.on_compare_reference_changed)
    self.refresh_compare_button.clicked.connect(self._refresh_compare_families)

    for table in (self.compare_parameters_table, self.compare_lines_table):
        attach_copy_shortcut(table)

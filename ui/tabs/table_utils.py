from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import QApplication, QHeaderView, QTableWidget

from config.constants import (
    LINES_CODE_COLUMN,
    LINES_COST_COLUMN,
    LINES_GRAMS_COLUMN,
    LINES_NAME_COLUMN,
    LINES_PERCENT_COLUMN,
    LINES_PHASE_COLUMN,
    LINES_PRICE_COLUMN,
    LINES_QSP_COLUMN,
)


def attach_copy_shortcut(table: QTableWidget) -> None:
    shortcut = QShortcut(QKeySequence.Copy, table)
    shortcut.setContext(Qt.WidgetWithChildrenShortcut)
    shortcut.activated.connect(lambda t=table: copy_table_selection(t))


def copy_table_selection(table: QTableWidget) -> None:
    """Copy the selected range as tab-separated text (pastes into Excel)."""
    sel_model = table.selectionModel()
    if not sel_model or not sel_model.hasSelection():
        return
    ranges = table.selectedRanges()
    if not ranges:
        return
    selected_range = ranges[0]
    rows = range(selected_range.topRow(), selected_range.bottomRow() + 1)
    cols = range(selected_range.leftColumn(), selected_range.rightColumn() + 1)

    headers: list[str] = []
    for col in cols:
        header_item = table.horizontalHeaderItem(col)
        headers.append(header_item.text() if header_item else "")
    lines = ["\t".join(headers)]

    for row in rows:
        row_vals: list[str] = []
        for col in cols:
            item = table.item(row, col)
            row_vals.append("" if item is None else item.text())
        lines.append("\t".join(row_vals))

    QApplication.clipboard().setText("\n".join(lines))


def set_formula_column_widths(lines_table: QTableWidget, totals_table: QTableWidget) -> None:
    for view in (lines_table, totals_table):
        header = view.horizontalHeader()
        header.setSectionResizeMode(QHeaderView.Interactive)

    lines_table.setColumnWidth(LINES_PHASE_COLUMN, 55)
    lines_table.setColumnWidth(LINES_CODE_COLUMN, 90)
    lines_table.setColumnWidth(LINES_NAME_COLUMN, 300)
    lines_table.setColumnWidth(LINES_PERCENT_COLUMN, 80)
    lines_table.setColumnWidth(LINES_GRAMS_COLUMN, 90)
    lines_table.setColumnWidth(LINES_PRICE_COLUMN, 90)
    lines_table.setColumnWidth(LINES_COST_COLUMN, 90)
    lines_table.setColumnWidth(LINES_QSP_COLUMN, 50)

    totals_table.setColumnWidth(0, 120)  # Phase
    totals_table.setColumnWidth(1, 70)   # Lignes
    totals_table.setColumnWidth(2, 90)   # %
    totals_table.setColumnWidth(3, 90)   # g

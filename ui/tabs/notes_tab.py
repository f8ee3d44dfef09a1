from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtWidgets import (
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
)

from config.constants import NOTES_FIELDS
from domain.models import STABILITY_DAYS

if TYPE_CHECKING:
    from ui.main_window import MainWindow


def build_notes_tab_ui(self: "MainWindow") -> None:
    """Build the Notes and stability tab UI."""
    layout = QHBoxLayout(self.notes_tab)

    # Lab notes, one field per result category.
    notes_group = QGroupBox("Notes et résultats")
    notes_form = QFormLayout(notes_group)
    self.improvement_goal_input = QLineEdit()
    self.improvement_goal_input.setPlaceholderText("Objectif de cette version")
    notes_form.addRow("Objectif d'amélioration", self.improvement_goal_input)
    self.notes_inputs = {}
    for key, label in NOTES_FIELDS:
        editor = QPlainTextEdit()
        editor.setMaximumHeight(60)
        self.notes_inputs[key] = editor
        notes_form.addRow(label, editor)
    layout.addWidget(notes_group, 1)

    # Stability test: start/stop plus one note per checkpoint.
    stability_group = QGroupBox("Stabilité")
    stability_layout = QVBoxLayout(stability_group)
    self.stability_status_label = QLabel("")
    stability_layout.addWidget(self.stability_status_label)

    stability_buttons = QHBoxLayout()
    self.start_stability_button = QPushButton("Démarrer")
    self.stop_stability_button = QPushButton("Arrêter")
    stability_buttons.addWidget(self.start_stability_button)
    stability_buttons.addWidget(self.stop_stability_button)
    stability_buttons.addStretch()
    stability_layout.addLayout(stability_buttons)

    days_form = QFormLayout()
    self.stability_inputs = {}
    for day in STABILITY_DAYS:
        editor = QLineEdit()
        self.stability_inputs[day] = editor
        days_form.addRow(day, editor)
    stability_layout.addLayout(days_form)
    stability_layout.addStretch()
    layout.addWidget(stability_group, 1)

    # Event connections.
    self.improvement_goal_input.editingFinished.connect(self.on_notes_edited)
    for editor in self.notes_inputs.values():
        editor.textChanged.connect(self.on_notes_edited)
    self.start_stability_button.clicked.connect(self.on_start_stability_clicked)
    self.stop_stability_button.clicked.connect(self.on_stop_stability_clicked)
    for day, editor in self.stability_inputs.items():
        editor.editingFinished.connect(lambda d=day: self.on_stability_day_edited(d))

"""Application constants.

Centralized location for magic numbers and strings used by the UI and
infrastructure layers.
"""

from PySide6.QtCore import Qt

# ============================================================================
# File Paths
# ============================================================================

SAVES_DIRECTORY = "saves"
FORMULAS_SUBDIRECTORY = "formulas"
REFERENCE_DATA_FILE = "reference_data.json"
LOG_FILE_DEFAULT = "app_debug.log"
LOG_FORMAT = "%(asctime)s [%(threadName)s] %(levelname)s %(message)s"

# ============================================================================
# Environment variables
# ============================================================================

ENV_DATA_DIR = "FORMULATOR_DATA_DIR"
ENV_USER = "FORMULATOR_USER"
ENV_ORGANIZATION = "FORMULATOR_ORGANIZATION"
ENV_LOG_FILE = "FORMULATOR_LOG_FILE"
ENV_LOG_LEVEL = "FORMULATOR_LOG_LEVEL"

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Cosmetic Formulator"
APP_VERSION = "0.3.0"
APP_WINDOW_TITLE = "Cosmetic Formulator"

DEFAULT_WINDOW_WIDTH = 1100
DEFAULT_WINDOW_HEIGHT = 700

# ============================================================================
# Qt Custom Roles
# ============================================================================

QSP_ROW_ROLE = Qt.UserRole + 501
PHASE_KEY_ROLE = Qt.UserRole + 502

# ============================================================================
# Formula table columns
# ============================================================================

LINES_PHASE_COLUMN = 0
LINES_CODE_COLUMN = 1
LINES_NAME_COLUMN = 2
LINES_PERCENT_COLUMN = 3
LINES_GRAMS_COLUMN = 4
LINES_PRICE_COLUMN = 5
LINES_COST_COLUMN = 6
LINES_QSP_COLUMN = 7

LINES_HEADERS = [
    "Phase",
    "Code",
    "Matière première",
    "%",
    "g",
    "Prix (€/kg)",
    "Coût (€/kg)",
    "QSP",
]

NOTES_FIELDS = [
    ("protocol", "Protocole"),
    ("aspect", "Aspect"),
    ("odour", "Odeur"),
    ("ph", "pH"),
    ("microscope", "Microscope"),
    ("remark", "Remarque"),
    ("packaging", "Conditionnement"),
    ("conclusion", "Conclusion"),
]

# ============================================================================
# Colours
# ============================================================================

# Same phase = same row colour (numeric phases 1-9).
PHASE_BACKGROUND_COLORS = {
    "1": "#dbeafe",
    "2": "#d1fae5",
    "3": "#fef3c7",
    "4": "#e9d5ff",
    "5": "#cffafe",
    "6": "#fce7f3",
    "7": "#fef9c3",
    "8": "#ddd6fe",
    "9": "#fed7aa",
}
QSP_BACKGROUND_COLOR = "#fce7f3"
QSP_TEXT_COLOR = "#db2777"
DEFAULT_BACKGROUND_COLOR = "#ffffff"

STOCK_INDICATOR_COLORS = {
    "neutre": "#e5e7eb",
    "rouge": "#ef4444",
    "vert": "#22c55e",
    "bleu": "#3b82f6",
}

# Version comparison: more / less than the reference version.
COMPARE_MORE_COLOR = "#bbf7d0"
COMPARE_LESS_COLOR = "#fecaca"

# Excel export
EXCEL_HEADER_COLOR = "2563EB"
EXCEL_QSP_COLOR = "FCE7F3"

"""Domain-specific exceptions.

Custom exceptions provide better error handling and clearer intent
than generic exceptions.
"""


class FormulatorError(Exception):
    """Base exception for all application errors."""


# ============================================================================
# Domain Errors
# ============================================================================


class InvalidFormulaError(FormulatorError):
    """Raised when formula state or an edit request is invalid."""


class QspLineEditError(InvalidFormulaError):
    """Raised when a caller tries to edit the computed QSP line directly."""


class LineIndexError(FormulatorError, IndexError):
    """Raised when a line index is outside the formula."""

    def __init__(self, index: int, count: int) -> None:
        super().__init__(f"Invalid line index: {index} (formula has {count} lines)")
        self.index = index
        self.count = count


class InvalidReferenceDataError(FormulatorError):
    """Raised when an ingredient, allergen or IFRA record is malformed."""


# ============================================================================
# Session Errors
# ============================================================================


class SessionError(FormulatorError):
    """Base exception for session/tenant resolution."""


class NotAuthenticatedError(SessionError):
    """Raised when no user identity is available."""


class OrganizationNotFoundError(SessionError):
    """Raised when the current user has no organization."""


# ============================================================================
# Persistence Errors
# ============================================================================


class PersistenceError(FormulatorError):
    """Base exception for persistence-related errors."""


class FormulaNotFoundError(PersistenceError):
    """Raised when a formula does not exist for the current organization."""


class InvalidFormulaFileError(PersistenceError):
    """Raised when a stored formula file is malformed."""


class ExportError(PersistenceError):
    """Raised when export operation fails."""


class SpreadsheetImportError(PersistenceError):
    """Raised when a reference spreadsheet cannot be imported.

    Carries a short title and a longer message so the UI can show
    them in a dialog as-is.
    """

    def __init__(self, title: str, message: str, severity: str = "warning") -> None:
        super().__init__(f"{title}: {message}")
        self.title = title
        self.message = message
        self.severity = severity

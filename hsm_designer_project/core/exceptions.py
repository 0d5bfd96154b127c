# hsm_designer_project/core/exceptions.py
"""Exception hierarchy shared by the document codec and the graph edit helpers."""

from typing import List


class HsmDesignerError(Exception):
    """Base class for every error raised by the HSM Designer core."""
    pass


class DocumentFormatError(HsmDesignerError, ValueError):
    """
    Raised when a document cannot be parsed or is not a mapping at its root.
    The parser's own message is kept verbatim so the editor can show it as-is.
    """
    pass


class ModelConsistencyError(HsmDesignerError):
    """Aggregated structural violations found by assert_model_consistent()."""

    def __init__(self, violations: List, message: str):
        super().__init__(message)
        self.violations = list(violations)


class GraphEditError(HsmDesignerError):
    """An interactive edit (move, rename) would break a graph invariant."""
    pass

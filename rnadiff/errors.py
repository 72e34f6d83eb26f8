"""
Error and warning classes for rnadiff.

Structural problems with the input raise immediately. Problems confined to a
single gene are recorded on that gene's result row and summarised with a
warning. Stage-level shortages of data raise ``InsufficientDataError`` so
callers can skip the stages that depend on them.
"""


class RnadiffError(Exception):
    """Base class for rnadiff errors."""


class InputShapeError(RnadiffError, ValueError):
    """Counts or sample annotation are malformed or inconsistent."""


class NumericDegeneracyError(RnadiffError, ArithmeticError):
    """A single-gene computation has no finite solution."""


class InsufficientDataError(RnadiffError, ValueError):
    """Too little data for an analysis stage.

    Parameters
    ----------
    stage : str
        Name of the stage that could not run.
    size : int
        The offending dimension (number of genes, universe size, ...).
    message : str, optional
        Extra detail.
    """

    def __init__(self, stage, size, message=None):
        self.stage = stage
        self.size = size
        detail = f": {message}" if message else ""
        super().__init__(f"insufficient data for {stage} (size={size}){detail}")


class AnalysisCancelled(RnadiffError):
    """Raised when a cancel event is set during a long computation."""


class NumericDegeneracyWarning(RuntimeWarning):
    """A numerical fallback was taken or genes were flagged degenerate."""


class MappingGapWarning(UserWarning):
    """Some gene identifiers had no counterpart in the annotation namespace."""

"""Exception types raised by costpath."""


class CostPathError(Exception):
    """Base class for all costpath errors."""


class InvalidInputError(CostPathError, ValueError):
    """Inputs cannot be traced (e.g. destination/back-link size mismatch)."""


class TraceCancelled(CostPathError):
    """Tracing was cancelled by the caller before it completed."""


class TraceError(CostPathError):
    """A single destination's pointer chain could not be followed.

    ``row``/``col`` locate the destination the trace started from and
    ``at_row``/``at_col`` the cell where following the chain failed.
    """

    reason = "error"

    def __init__(self, message, row=None, col=None, at_row=None, at_col=None):
        super().__init__(message)
        self.row = row
        self.col = col
        self.at_row = at_row
        self.at_col = at_col


class CorruptPointerError(TraceError):
    """A back-link cell holds a value that is not a valid direction code."""

    reason = "corrupt_pointer"


class OutOfBoundsError(TraceError):
    """A back-link chain steps off the edge of the grid."""

    reason = "out_of_bounds"


class LoopDetectedError(TraceError):
    """A back-link chain does not terminate (it contains a cycle)."""

    reason = "loop_detected"

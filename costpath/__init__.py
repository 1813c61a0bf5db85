"""Least-cost pathway tracing over cost-distance back-link rasters."""

from .errors import (
    CostPathError, InvalidInputError, TraceCancelled, TraceError,
    CorruptPointerError, OutOfBoundsError, LoopDetectedError,
)
from .tracers import PathTracer, TraceFailure, TraceResult, trace_path, trace_pathways

__version__ = "0.1.0"

__all__ = [
    "CostPathError", "InvalidInputError", "TraceCancelled", "TraceError",
    "CorruptPointerError", "OutOfBoundsError", "LoopDetectedError",
    "PathTracer", "TraceFailure", "TraceResult", "trace_path", "trace_pathways",
]

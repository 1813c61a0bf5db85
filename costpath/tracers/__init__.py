from .pathway import PathTracer, TraceFailure, TraceResult, trace_path, trace_pathways

__all__ = ["PathTracer", "TraceFailure", "TraceResult", "trace_path", "trace_pathways"]

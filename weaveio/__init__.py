"""Pattern-based logging, a one-shot IO readiness loop and servlet path dispatch."""

__version__ = "0.1.0"
__all__ = ["logformat", "logger", "iomanager", "servlet"]
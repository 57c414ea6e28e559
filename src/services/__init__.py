"""
Service layer modules for query-time context assembly.
"""

from .context_window_fitter import ContextWindowFitter  # noqa: F401

__all__ = ["ContextWindowFitter"]

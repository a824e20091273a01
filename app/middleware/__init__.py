"""HTTP middleware: request and correlation IDs.

Applied in main app; order matters (first added = outermost).
"""

from app.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]

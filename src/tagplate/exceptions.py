"""Tagplate Exceptions

Custom exceptions raised while resolving, compiling and rendering templates.
"""

from __future__ import annotations


class TemplateError(Exception):
    """Base exception for all tagplate errors."""

    pass


class TemplateNotFound(TemplateError):
    """Raised when no finder in the chain can resolve an identifier."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"template [{identifier}] is not found!")


class CompileError(TemplateError):
    """Raised when template markup cannot be turned into compiled code."""

    def __init__(self, message: str, name: str | None = None):
        self.name = name
        if name:
            message = f"{name}: {message}"
        super().__init__(message)


class RenderFailure(TemplateError):
    """Raised when already-compiled code fails while executing.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, message: str, name: str | None = None):
        self.name = name
        super().__init__(message)

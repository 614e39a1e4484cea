"""Typed errors raised at the grading pipeline boundary.

Rules never raise these. They are raised by loaders, fetchers and the run
store, and surface to MCP clients as tool-level error results.
"""

from __future__ import annotations

from typing import Optional


class GraderError(Exception):
    """Base class for every error the grader reports to callers."""


class SpecLoadError(GraderError):
    """The specification could not be read or parsed."""


class SpecFetchError(GraderError):
    """A URL-sourced specification could not be fetched."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        if status_code is not None:
            text = f"Failed to fetch specification from {url}: HTTP {status_code} ({message})"
        else:
            text = f"Failed to fetch specification from {url}: {message}"
        super().__init__(text)


class TemplateError(GraderError):
    """The scoring template could not be read or parsed."""


class StoreError(GraderError):
    """A run store operation failed (connection, schema or query)."""


class GradingTimeout(GraderError):
    """The caller's deadline elapsed before grading finished. Nothing was persisted."""

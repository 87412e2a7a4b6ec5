"""
Error taxonomy for the render service.

Engines raise these exceptions; the HTTP layer maps each family to a
status code and a JSON ``{"error": ...}`` body. None of them is fatal
to the process.

    RequestValidationFailure  missing/empty field, invalid name    -> 400
    TemplateError             parse or execution failure           -> 400
    StorageError              directory creation / write failure   -> 500
    ArtifactNotFoundError     referenced artifact does not exist   -> 404
    RenderPipelineError       browser launch/navigate/print/timeout -> 500
    UpstreamError             DMS unreachable or non-2xx           -> 502
"""

from __future__ import annotations

from typing import Optional


class RenderApiError(RuntimeError):
    """Base class for every per-request failure raised by the service."""


class RequestValidationFailure(RenderApiError):
    """A required field is missing or empty, or a name normalises to nothing."""


# ---------------------------------------------------------------------------
# Template engine
# ---------------------------------------------------------------------------


class TemplateError(RenderApiError):
    """Raised when a template cannot be parsed or executed."""


class TemplateParseError(TemplateError):
    """Syntax error, reported before any evaluation takes place."""

    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.message = message
        self.line = line
        self.column = column
        if line is not None:
            message = f"{line}:{column}: {message}"
        super().__init__(message)


class TemplateExecError(TemplateError):
    """Runtime failure while evaluating a parsed template."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(RenderApiError):
    """Raised when the template store cannot create or write artifacts."""


class ArtifactNotFoundError(StorageError):
    """A caller referenced a stored artifact that does not exist."""


# ---------------------------------------------------------------------------
# PDF pipeline
# ---------------------------------------------------------------------------


class RenderPipelineError(RenderApiError):
    """Raised when HTML to PDF conversion fails at any stage."""

    stage = "render"


class BrowserLaunchError(RenderPipelineError):
    stage = "launch"


class NavigationError(RenderPipelineError):
    stage = "navigate"


class PrintError(RenderPipelineError):
    stage = "print"


class RenderTimeoutError(RenderPipelineError, TimeoutError):
    stage = "timeout"


# ---------------------------------------------------------------------------
# Upstream (DMS)
# ---------------------------------------------------------------------------


class UpstreamError(RenderApiError):
    """
    The document-management endpoint was unreachable or rejected the upload.

    ``response`` carries the raw upstream body when one was received.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        response: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class DmsNotConfiguredError(UpstreamError):
    """DMS forwarding was requested but no endpoint/secret is configured."""

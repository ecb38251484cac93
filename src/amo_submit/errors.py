"""Error hierarchy for AMO submissions.

Every failure surfaced by the submission workflow derives from SubmitError so
callers can catch one type at the boundary. Messages name the stage that
failed and never include credentials or token material.
"""

from __future__ import annotations


class SubmitError(Exception):
    """Base exception for submission failures."""


class ConfigurationError(SubmitError, ValueError):
    """Invalid settings, base URL, or input file."""


class AuthenticationError(SubmitError):
    """The API token could not be signed."""


class HttpStatusError(SubmitError):
    """Response status outside the accepted range for a JSON request."""

    def __init__(self, context: str, status_code: int, reason: str = "") -> None:
        self.context = context
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"{context}: {reason or status_code}.")


class ValidationRejected(SubmitError):
    """The uploaded package was processed and found invalid."""

    def __init__(self, details_url: str | None) -> None:
        self.details_url = details_url
        super().__init__(
            "Validation failed, open the following URL for more information: "
            f"{details_url}"
        )


class PollTimeoutError(SubmitError, TimeoutError):
    """A polling stage did not succeed before its abort interval elapsed."""

    def __init__(self, context: str) -> None:
        self.context = context
        super().__init__(f"{context}: timeout.")


class DownloadError(SubmitError):
    """The signed file could not be fetched or written.

    The message is deliberately generic; the underlying cause is logged and
    chained as ``__cause__``.
    """

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Downloading {filename} failed")


class FilesystemError(SubmitError, OSError):
    """Writing a local file (such as the saved id file) failed."""


class ResponseFormatError(SubmitError):
    """A successful response lacked a field the workflow depends on."""

    def __init__(self, context: str, detail: str) -> None:
        self.context = context
        self.detail = detail
        super().__init__(f"{context}: {detail}.")

"""Submit browser extensions to addons.mozilla.org for signing."""

__version__ = "0.1.0"

from .auth import ApiAuth, Credentials, JwtApiAuth, SignedToken, TokenSigner
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DownloadError,
    FilesystemError,
    HttpStatusError,
    PollTimeoutError,
    ResponseFormatError,
    SubmitError,
    ValidationRejected,
)
from .settings import SubmitSettings
from .sign import sign_addon
from .workflow import SignResult, SubmissionState, SubmissionWorkflow

__all__ = [
    "ApiAuth",
    "AuthenticationError",
    "ConfigurationError",
    "Credentials",
    "DownloadError",
    "FilesystemError",
    "HttpStatusError",
    "JwtApiAuth",
    "PollTimeoutError",
    "ResponseFormatError",
    "SignResult",
    "SignedToken",
    "SubmissionState",
    "SubmissionWorkflow",
    "SubmitError",
    "SubmitSettings",
    "TokenSigner",
    "ValidationRejected",
    "__version__",
    "sign_addon",
]

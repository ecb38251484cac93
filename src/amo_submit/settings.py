"""Submission settings.

SubmitSettings is the single configuration object accepted by sign_addon().
It is a plain frozen dataclass (not env-coupled) so tests can inject config
without touching os.environ; ``from_env`` and ``from_mapping`` are factories
for the CLI and for config files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import urlparse

from . import __version__
from .auth import DEFAULT_TOKEN_TTL_SECONDS
from .errors import ConfigurationError

DEFAULT_BASE_URL = "https://addons.mozilla.org/api/v5/"
DEFAULT_SAVED_ID_PATH = ".amo-upload-uuid"
LISTED_CHANNEL = "listed"

_MAX_TOKEN_TTL_SECONDS = 3600


@dataclass(frozen=True, slots=True)
class SubmitSettings:
    """Configuration for one add-on submission.

    Only ``api_key`` and ``api_secret`` are required. Durations are seconds.
    """

    # ── Credentials ────────────────────────────────────────────────
    api_key: str
    """JWT issuer, from the AMO developer hub."""

    api_secret: str = field(repr=False)
    """JWT signing secret. Never log this."""

    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    """Lifetime of each per-request token."""

    # ── API ────────────────────────────────────────────────────────
    base_url: str = DEFAULT_BASE_URL
    """AMO API root; the ``addons/`` endpoints are resolved beneath it."""

    user_agent: str = f"amo-submit/{__version__}"

    request_timeout_seconds: float = 30.0
    """Timeout applied to each individual HTTP request."""

    # ── Polling ────────────────────────────────────────────────────
    validation_check_interval: float = 1.0
    validation_check_timeout: float = 300.0
    approval_check_interval: float = 1.0
    approval_check_timeout: float = 900.0

    # ── Submission ─────────────────────────────────────────────────
    channel: str = LISTED_CHANNEL
    """``listed``; any other value is submitted as unlisted."""

    addon_id: str | None = None
    """Existing add-on id. None creates a new add-on."""

    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    """Extra add-on metadata merged into the create/update request."""

    download_dir: str = field(default_factory=os.getcwd)
    saved_id_path: str = DEFAULT_SAVED_ID_PATH

    @property
    def is_listed(self) -> bool:
        return self.channel == LISTED_CHANNEL

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.api_key:
            errors.append("api_key is required")
        if not self.api_secret:
            errors.append("api_secret is required")
        if not 1 <= self.token_ttl_seconds <= _MAX_TOKEN_TTL_SECONDS:
            errors.append(
                f"token_ttl_seconds must be 1-{_MAX_TOKEN_TTL_SECONDS}, "
                f"got {self.token_ttl_seconds}"
            )
        for name in (
            "request_timeout_seconds",
            "validation_check_interval",
            "validation_check_timeout",
            "approval_check_interval",
            "approval_check_timeout",
        ):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name} must be > 0, got {value}")
        if not self.channel:
            errors.append("channel is required")
        if self.addon_id is not None and not str(self.addon_id).strip():
            errors.append("addon_id must not be blank")
        if not isinstance(self.metadata, Mapping):
            errors.append("metadata must be a mapping")
        return errors

    def ensure_valid(self) -> SubmitSettings:
        errors = self.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SubmitSettings:
        """Build settings from a mapping (e.g. a parsed config file).

        Unknown keys are rejected rather than ignored.

        Raises:
            ConfigurationError: On unknown keys, missing required keys, or
                invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown settings: {', '.join(unknown)}")
        missing = [name for name in ("api_key", "api_secret") if name not in data]
        if missing:
            raise ConfigurationError(f"missing settings: {', '.join(missing)}")

        values = dict(data)
        if "metadata" in values:
            values["metadata"] = MappingProxyType(dict(values["metadata"] or {}))
        return cls(**values).ensure_valid()

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> SubmitSettings:
        """Build settings from environment variables.

        Keyword overrides that are not None win over the environment. This is
        a convenience factory for the CLI; tests should construct
        SubmitSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        values: dict[str, Any] = {
            "api_key": env.get("AMO_API_KEY", ""),
            "api_secret": env.get("AMO_API_SECRET", ""),
        }
        if env.get("AMO_BASE_URL"):
            values["base_url"] = env["AMO_BASE_URL"]
        if env.get("AMO_CHANNEL"):
            values["channel"] = env["AMO_CHANNEL"]
        if env.get("AMO_ADDON_ID"):
            values["addon_id"] = env["AMO_ADDON_ID"]
        if env.get("AMO_DOWNLOAD_DIR"):
            values["download_dir"] = env["AMO_DOWNLOAD_DIR"]
        try:
            if env.get("AMO_TIMEOUT"):
                timeout = float(env["AMO_TIMEOUT"])
                values["validation_check_timeout"] = timeout
                values["approval_check_timeout"] = timeout
            if env.get("AMO_TOKEN_TTL"):
                values["token_ttl_seconds"] = int(env["AMO_TOKEN_TTL"])
        except ValueError as exc:
            raise ConfigurationError(f"invalid numeric setting: {exc}") from exc

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_mapping(values)


def validate_base_url(base_url: str) -> str:
    """Return ``base_url`` with a trailing slash, or raise ConfigurationError."""
    parsed = urlparse(base_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid AMO API base URL: {base_url}")
    if not base_url.endswith("/"):
        base_url += "/"
    return base_url

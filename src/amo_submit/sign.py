"""Top-level entry point: sign one add-on package with AMO."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

import httpx

from .auth import JwtApiAuth
from .errors import ConfigurationError
from .gateway import HttpGateway
from .id_file import IdPersister, save_id_to_file
from .polling import PollingWaiter, Scheduler
from .settings import SubmitSettings, validate_base_url
from .workflow import SignResult, SubmissionWorkflow

logger = logging.getLogger(__name__)


def _check_source_file(xpi_path: str | Path) -> None:
    try:
        st = os.stat(xpi_path)
    except OSError as exc:
        raise ConfigurationError(f"error with {xpi_path}: {exc}") from exc
    if not stat.S_ISREG(st.st_mode):
        raise ConfigurationError(f"error with {xpi_path}: not a file: {xpi_path}")
    logger.debug("Submitting %s (%d bytes)", xpi_path, st.st_size)


async def sign_addon(
    settings: SubmitSettings,
    *,
    xpi_path: str | Path,
    http_client: httpx.AsyncClient | None = None,
    scheduler: Scheduler | None = None,
    workflow_class: type[SubmissionWorkflow] = SubmissionWorkflow,
    auth_class: type[JwtApiAuth] = JwtApiAuth,
    save_id: IdPersister = save_id_to_file,
) -> SignResult:
    """Submit ``xpi_path`` and download the signed result.

    Creates a new add-on when ``settings.addon_id`` is None, otherwise adds a
    new version to that add-on.

    Raises:
        ConfigurationError: If the settings, base URL, or source file are invalid.
        SubmitError: For any failure during the submission itself.
    """
    _check_source_file(xpi_path)
    validate_base_url(settings.base_url)
    settings.ensure_valid()

    api_auth = auth_class(
        api_key=settings.api_key,
        api_secret=settings.api_secret,
        token_ttl_seconds=settings.token_ttl_seconds,
    )

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient()
    try:
        gateway = HttpGateway(
            api_auth=api_auth,
            user_agent=settings.user_agent,
            http_client=client,
            timeout_seconds=settings.request_timeout_seconds,
        )
        workflow = workflow_class(
            settings=settings,
            gateway=gateway,
            waiter=PollingWaiter(gateway, scheduler),
            save_id=save_id,
        )
        return await workflow.run(xpi_path)
    finally:
        if owns_client:
            await client.aclose()

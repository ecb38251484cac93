"""Submission workflow: upload, validate, create or update, approve, download.

Drives one package through the AMO signing flow:
  upload_pending -> validating -> valid -> create_or_update
  -> approving -> approved -> downloading -> done

Error transitions:
  validating -> validation_failed   (the package was rejected)
  any active state -> failed        (HTTP, timeout, download or I/O error)

Whether a new add-on is created or a new version is added to an existing one
depends only on ``settings.addon_id``. The workflow never reaches approval
polling without a successful validation; the transition table enforces it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from .errors import (
    DownloadError,
    HttpStatusError,
    ResponseFormatError,
    SubmitError,
    ValidationRejected,
)
from .gateway import FilePart, HttpGateway, MultipartForm
from .id_file import IdPersister, save_id_to_file
from .observability.logging import bind_stage
from .polling import PollingWaiter
from .settings import SubmitSettings, validate_base_url
from .transfer import stream_to_file

logger = logging.getLogger(__name__)

PUBLIC_FILE_STATUS = "public"


# ── States ───────────────────────────────────────────────────────


class SubmissionState(str, Enum):
    UPLOAD_PENDING = "upload_pending"
    VALIDATING = "validating"
    VALID = "valid"
    VALIDATION_FAILED = "validation_failed"
    CREATE_OR_UPDATE = "create_or_update"
    APPROVING = "approving"
    APPROVED = "approved"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"


_S = SubmissionState

ALLOWED_TRANSITIONS: Mapping[SubmissionState, frozenset[SubmissionState]] = MappingProxyType(
    {
        _S.UPLOAD_PENDING: frozenset({_S.VALIDATING, _S.FAILED}),
        _S.VALIDATING: frozenset({_S.VALID, _S.VALIDATION_FAILED, _S.FAILED}),
        _S.VALID: frozenset({_S.CREATE_OR_UPDATE, _S.FAILED}),
        _S.CREATE_OR_UPDATE: frozenset({_S.APPROVING, _S.FAILED}),
        _S.APPROVING: frozenset({_S.APPROVED, _S.FAILED}),
        _S.APPROVED: frozenset({_S.DOWNLOADING, _S.FAILED}),
        _S.DOWNLOADING: frozenset({_S.DONE, _S.FAILED}),
        _S.DONE: frozenset(),
        _S.VALIDATION_FAILED: frozenset(),
        _S.FAILED: frozenset(),
    }
)

TERMINAL_STATES = frozenset({_S.DONE, _S.VALIDATION_FAILED, _S.FAILED})


class InvalidStateTransition(SubmitError):
    """Raised for out-of-order workflow steps."""

    def __init__(self, from_state: SubmissionState, to_state: SubmissionState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"invalid state transition: {from_state.value!r} -> {to_state.value!r}"
        )


# ── Results ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RecordIdentity:
    """Add-on guid plus the id of the version created by this submission."""

    record_id: str
    version_id: int | str


@dataclass(frozen=True, slots=True)
class SignResult:
    id: str
    downloaded_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "downloaded_files": list(self.downloaded_files)}


def merge_metadata(upload_uuid: str, metadata: Mapping[str, Any] | None) -> dict[str, Any]:
    """Attach the upload to the caller's metadata.

    Keys of the caller's ``version`` mapping win over the generated ones.
    """
    metadata = dict(metadata or {})
    version = dict(metadata.get("version") or {})
    return {**metadata, "version": {"upload": upload_uuid, **version}}


# ── Workflow ─────────────────────────────────────────────────────


class SubmissionWorkflow:
    """Runs one submission through the AMO signing API.

    A workflow instance handles exactly one package; create a new instance
    per submission.
    """

    def __init__(
        self,
        *,
        settings: SubmitSettings,
        gateway: HttpGateway,
        waiter: PollingWaiter | None = None,
        save_id: IdPersister = save_id_to_file,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._waiter = waiter or PollingWaiter(gateway)
        self._save_id = save_id
        self.api_url = httpx.URL(validate_base_url(settings.base_url)).join("addons/")
        self.state = SubmissionState.UPLOAD_PENDING
        self.history: list[SubmissionState] = [self.state]

    # ── State handling ───────────────────────────────────────────

    def _transition(self, to_state: SubmissionState) -> None:
        if to_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransition(self.state, to_state)
        self.state = to_state
        self.history.append(to_state)
        bind_stage(to_state.value)

    def _require(self, state: SubmissionState, next_state: SubmissionState) -> None:
        # Checked before any request is sent for the step.
        if self.state is not state:
            raise InvalidStateTransition(self.state, next_state)

    def _mark_failed(self) -> None:
        if self.state not in TERMINAL_STATES:
            self._transition(SubmissionState.FAILED)

    def _url(self, path: str) -> httpx.URL:
        return self.api_url.join(path)

    # ── Upload and validation ────────────────────────────────────

    async def upload(self, xpi_path: str | Path, channel: str) -> str:
        """POST the package and return the upload uuid."""
        self._require(SubmissionState.UPLOAD_PENDING, SubmissionState.VALIDATING)
        form = MultipartForm(
            fields={"channel": channel},
            files={"upload": FilePart.from_path(xpi_path)},
        )
        data = await self._gateway.request_json(
            self._url("upload/"), "POST", form, error_context="Upload failed"
        )
        try:
            uuid = data["uuid"]
        except (KeyError, TypeError) as exc:
            raise ResponseFormatError("Upload failed", "response has no uuid") from exc
        self._transition(SubmissionState.VALIDATING)
        return uuid

    async def wait_for_validation(self, uuid: str) -> str:
        """Poll the upload until it is processed; return the validated uuid."""
        self._require(SubmissionState.VALIDATING, SubmissionState.VALID)
        logger.info("Waiting for Validation...")

        def check(detail: dict[str, Any]) -> str | None:
            if not detail.get("processed"):
                return None

            logger.info("Validation results: %s", detail.get("validation"))
            if detail.get("valid"):
                return detail.get("uuid") or uuid

            logger.info("Validation failed.")
            raise ValidationRejected(detail.get("url"))

        try:
            result = await self._waiter.wait_retry(
                check,
                self._url(f"upload/{uuid}/"),
                self._settings.validation_check_interval,
                self._settings.validation_check_timeout,
                "Validation",
            )
        except ValidationRejected:
            self._transition(SubmissionState.VALIDATION_FAILED)
            raise

        self._transition(SubmissionState.VALID)
        return result

    async def upload_and_validate(self, xpi_path: str | Path, channel: str) -> str:
        uuid = await self.upload(xpi_path, channel)
        return await self.wait_for_validation(uuid)

    # ── Add-on record ────────────────────────────────────────────

    async def create_addon(
        self, uuid: str, metadata: Mapping[str, Any] | None, channel: str
    ) -> RecordIdentity:
        """POST a new add-on for the validated upload."""
        self._transition(SubmissionState.CREATE_OR_UPDATE)
        body = json.dumps(merge_metadata(uuid, metadata))
        data = await self._gateway.request_json(
            self._url("addon/"), "POST", body, error_context="Creating add-on failed"
        )

        version_key = (
            "current_version" if channel == "listed" else "latest_unlisted_version"
        )
        try:
            return RecordIdentity(
                record_id=data["guid"],
                version_id=data[version_key]["id"],
            )
        except (KeyError, TypeError) as exc:
            raise ResponseFormatError(
                "Creating add-on failed", f"response has no guid or {version_key} id"
            ) from exc

    async def update_addon(
        self, addon_id: str, uuid: str, metadata: Mapping[str, Any] | None
    ) -> RecordIdentity:
        """PUT a new version onto an existing add-on and resolve its id."""
        self._transition(SubmissionState.CREATE_OR_UPDATE)
        body = json.dumps(merge_metadata(uuid, metadata))
        await self._gateway.request_status(
            self._url(f"addon/{addon_id}/"),
            "PUT",
            body,
            error_context="Creating version failed",
        )

        listing = await self._gateway.request_json(
            self._url(f"addon/{addon_id}/versions/?filter=all_with_unlisted"),
            error_context="Getting versions failed",
        )
        try:
            version_id = listing["results"][0]["id"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ResponseFormatError(
                "Getting versions failed", "version listing is empty"
            ) from exc
        return RecordIdentity(record_id=addon_id, version_id=version_id)

    # ── Approval and download ────────────────────────────────────

    async def wait_for_approval(self, addon_id: str, version_id: int | str) -> str:
        """Poll the version until its file is public; return the file URL."""
        self._transition(SubmissionState.APPROVING)
        logger.info("Waiting for Approval...")

        def check(detail: dict[str, Any]) -> str | None:
            file = detail.get("file")
            if file and file.get("status") == PUBLIC_FILE_STATUS:
                return file.get("url")
            return None

        file_url = await self._waiter.wait_retry(
            check,
            self._url(f"addon/{addon_id}/versions/{version_id}/"),
            self._settings.approval_check_interval,
            self._settings.approval_check_timeout,
            "Approval",
        )
        self._transition(SubmissionState.APPROVED)
        return file_url

    async def download_signed_file(self, file_url: str | httpx.URL, addon_id: str) -> SignResult:
        """Fetch the signed file into the download directory."""
        self._transition(SubmissionState.DOWNLOADING)
        url = httpx.URL(str(file_url))
        filename = url.path.rsplit("/", 1)[-1]
        dest = Path(self._settings.download_dir) / filename

        try:
            async with self._gateway.stream(url) as resp:
                if not resp.is_success or resp.status_code == httpx.codes.NO_CONTENT:
                    raise HttpStatusError(
                        "Download failed", resp.status_code, resp.reason_phrase
                    )
                await stream_to_file(resp.aiter_bytes(), dest)
        except Exception as exc:
            # Full detail goes to the log only; callers get a generic message.
            logger.error("Download of signed xpi failed: %s.", exc, exc_info=True)
            raise DownloadError(filename) from exc

        self._transition(SubmissionState.DONE)
        return SignResult(id=addon_id, downloaded_files=[filename])

    # ── Flows ────────────────────────────────────────────────────

    async def post_new_addon(self, xpi_path: str | Path) -> SignResult:
        """Create a new add-on from ``xpi_path`` and download the signed file."""
        settings = self._settings
        try:
            uuid = await self.upload_and_validate(xpi_path, settings.channel)
            identity = await self.create_addon(uuid, settings.metadata, settings.channel)

            self._save_id(settings.saved_id_path, identity.record_id)
            logger.info("Generated extension ID: %s.", identity.record_id)
            logger.info("You must add the following to your manifest:")
            logger.info(
                '"browser_specific_settings": {"gecko": {"id": "%s"}}',
                identity.record_id,
            )

            file_url = await self.wait_for_approval(identity.record_id, identity.version_id)
            return await self.download_signed_file(file_url, identity.record_id)
        except Exception:
            self._mark_failed()
            raise

    async def put_version(self, xpi_path: str | Path, addon_id: str) -> SignResult:
        """Add a new version to ``addon_id`` and download the signed file."""
        settings = self._settings
        try:
            uuid = await self.upload_and_validate(xpi_path, settings.channel)
            identity = await self.update_addon(addon_id, uuid, settings.metadata)

            file_url = await self.wait_for_approval(identity.record_id, identity.version_id)
            return await self.download_signed_file(file_url, identity.record_id)
        except Exception:
            self._mark_failed()
            raise

    async def run(self, xpi_path: str | Path) -> SignResult:
        if self._settings.addon_id is None:
            return await self.post_new_addon(xpi_path)
        return await self.put_version(xpi_path, self._settings.addon_id)

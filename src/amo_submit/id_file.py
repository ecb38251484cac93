"""Persist an auto-generated add-on id next to the extension sources."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .errors import FilesystemError

logger = logging.getLogger(__name__)

ID_FILE_HEADER = (
    "# This file was created by amo-submit",
    "# Your auto-generated extension ID for addons.mozilla.org is:",
)


class IdPersister(Protocol):
    def __call__(self, path: str | Path, addon_id: str) -> None:
        ...


def save_id_to_file(path: str | Path, addon_id: str) -> None:
    """Overwrite ``path`` with two comment lines followed by the bare id.

    Raises:
        FilesystemError: If the file cannot be written.
    """
    content = "\n".join([*ID_FILE_HEADER, str(addon_id)])
    try:
        Path(path).write_text(content, encoding="utf-8")
    except OSError as exc:
        raise FilesystemError(f"Saving extension ID to {path} failed: {exc}") from exc

    logger.debug("Saved auto-generated ID %s to %s", addon_id, path)

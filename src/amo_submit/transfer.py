"""Stream a response body into a local file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterable

logger = logging.getLogger(__name__)


async def stream_to_file(source: AsyncIterable[bytes], dest_path: str | Path) -> int:
    """Write every chunk of ``source`` to ``dest_path`` and return the byte count.

    The destination is created or truncated. The file is closed whether the
    copy completes or fails; errors from either side propagate unchanged.
    """
    written = 0
    with open(dest_path, "wb") as fh:
        async for chunk in source:
            fh.write(chunk)
            written += len(chunk)
    logger.debug("Wrote %d bytes to %s", written, dest_path)
    return written

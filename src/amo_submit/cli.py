"""Command-line front end: ``amo-submit sign path/to/extension.xpi``.

Options left unset fall back to the AMO_* environment variables read by
SubmitSettings.from_env.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import httpx

from . import __version__
from .errors import ConfigurationError, SubmitError
from .observability import configure_logging
from .settings import SubmitSettings
from .sign import sign_addon

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amo-submit",
        description="Submit a browser extension to addons.mozilla.org for signing.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--log-format", choices=("console", "json"), default=None,
        help="Log rendering (default: LOG_FORMAT or console)",
    )

    subcommands = parser.add_subparsers(dest="command", required=True)
    sign = subcommands.add_parser("sign", help="Upload, wait for signing, download")
    sign.add_argument("source", help="Path to the packaged extension (.xpi)")
    sign.add_argument("--api-key", help="API key (JWT issuer); env AMO_API_KEY")
    sign.add_argument("--api-secret", help="API secret; env AMO_API_SECRET")
    sign.add_argument("--amo-base-url", dest="base_url", help="API root; env AMO_BASE_URL")
    sign.add_argument(
        "--timeout", type=float,
        help="Seconds to wait for validation and for approval; env AMO_TIMEOUT",
    )
    sign.add_argument("--id", dest="addon_id", help="Existing add-on id; omit to create one")
    sign.add_argument("--channel", help="listed or unlisted; env AMO_CHANNEL")
    sign.add_argument("--download-dir", help="Where the signed file is written")
    sign.add_argument("--metadata", type=Path, help="JSON file with add-on metadata")
    sign.add_argument("--saved-id-path", help="File receiving a newly generated add-on id")
    return parser


def _load_metadata(path: Path | None) -> dict[str, Any] | None:
    if path is None:
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Invalid metadata file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid metadata file {path}: expected a JSON object")
    return data


def run_sign(args: argparse.Namespace) -> int:
    settings = SubmitSettings.from_env(
        api_key=args.api_key,
        api_secret=args.api_secret,
        base_url=args.base_url,
        validation_check_timeout=args.timeout,
        approval_check_timeout=args.timeout,
        addon_id=args.addon_id,
        channel=args.channel,
        download_dir=args.download_dir,
        metadata=_load_metadata(args.metadata),
        saved_id_path=args.saved_id_path,
    )
    result = asyncio.run(sign_addon(settings, xpi_path=args.source))
    logger.info("Signed add-on %s: %s", result.id, ", ".join(result.downloaded_files))
    print(json.dumps(result.to_dict()))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        level=args.log_level,
        json_output=None if args.log_format is None else args.log_format == "json",
    )
    try:
        return run_sign(args)
    except (SubmitError, httpx.HTTPError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

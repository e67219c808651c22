# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""sigv4 CLI — sign requests and create presigned URLs.

Subcommands:

* ``presign`` — print a presigned URL
* ``sign``    — print the headers of a signed request

Credentials are read from ``AWS_ACCESS_KEY_ID``,
``AWS_SECRET_ACCESS_KEY`` and (optionally) ``AWS_SESSION_TOKEN``.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from sigv4.config import ConfigError, SignerConfig, get_config_path
from sigv4.errors import MissingCredentialError, SigningError
from sigv4.logging import configure_logging, get_logger
from sigv4.signer import SigV4Signer
from sigv4.types import Credentials, PayloadMarker, RequestDescriptor


logger = get_logger(__name__)

_SUBCOMMANDS = frozenset({"presign", "sign"})

_USAGE = """\
usage: sigv4 <command> [args]

commands:
  presign   Print a presigned URL
  sign      Print the headers of a signed request

Run 'sigv4 <command> --help' for command-specific help.\
"""


def _credentials_from_env() -> Credentials:
    """Read credentials from the standard AWS environment variables.

    Raises:
        MissingCredentialError: If the key id or secret is unset.
    """
    access_key_id = os.environ.get("AWS_ACCESS_KEY_ID", "")
    secret_access_key = os.environ.get("AWS_SECRET_ACCESS_KEY", "")
    if not access_key_id or not secret_access_key:
        raise MissingCredentialError(
            "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set"
        )
    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=os.environ.get("AWS_SESSION_TOKEN") or None,
    )


def _load_config(path: Path | None) -> SignerConfig:
    """Load an explicit config, else the default one if it exists."""
    if path is not None:
        return SignerConfig.from_yaml(path)
    default = get_config_path()
    if default.exists():
        return SignerConfig.from_yaml(default)
    return SignerConfig()


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--region", help="Signing region")
    parser.add_argument("--service", help="Service signing name")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=f"Path to sigv4.yaml (default: {get_config_path()})",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )


def _make_signer(args: argparse.Namespace) -> SigV4Signer:
    """Build a signer from CLI arguments, config and environment.

    Raises:
        ConfigError: If no region can be determined.
        MissingCredentialError: If credentials are not set.
    """
    config = _load_config(args.config)
    region = (
        args.region
        or config.region
        or os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
    )
    if not region:
        raise ConfigError(
            "No region: pass --region, set it in the config or AWS_REGION"
        )
    service = args.service or config.service or "s3"
    return SigV4Signer(_credentials_from_env(), region, service, config=config)


# ── presign subcommand ──────────────────────────────────────────────


def cmd_presign(argv: list[str]) -> int:
    """Print a presigned URL.

    Args:
        argv: Subcommand arguments.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    parser = argparse.ArgumentParser(
        prog="sigv4 presign", description="Create a presigned URL"
    )
    parser.add_argument("url", help="URL to presign")
    parser.add_argument(
        "--method", default="GET", help="HTTP method (default: GET)"
    )
    parser.add_argument(
        "--expires",
        type=int,
        default=None,
        metavar="SECONDS",
        help="Lifetime in seconds (default: from config, 3600)",
    )
    _add_common_arguments(parser)
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)

    try:
        signer = _make_signer(args)
        request = RequestDescriptor.from_url(args.method, args.url)
        print(signer.presign_url(request, args.expires))
    except (SigningError, ConfigError) as e:
        logger.error("%s", e)
        return 1
    return 0


# ── sign subcommand ─────────────────────────────────────────────────


def _parse_header(value: str) -> tuple[str, str]:
    """Parse ``Name: value`` from a ``-H`` argument."""
    name, sep, rest = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(
            f"Header must look like 'Name: value', got {value!r}"
        )
    return name.strip(), rest.strip()


def cmd_sign(argv: list[str]) -> int:
    """Print the headers of a header-signed request.

    Args:
        argv: Subcommand arguments.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    parser = argparse.ArgumentParser(
        prog="sigv4 sign", description="Sign a request"
    )
    parser.add_argument("method", help="HTTP method")
    parser.add_argument("url", help="Request URL")
    parser.add_argument(
        "-H",
        "--header",
        dest="headers",
        action="append",
        type=_parse_header,
        default=[],
        metavar="'NAME: VALUE'",
        help="Extra header to sign (repeatable)",
    )
    body = parser.add_mutually_exclusive_group()
    body.add_argument("--data", help="Request body")
    body.add_argument(
        "--data-file", type=Path, metavar="PATH", help="Read body from file"
    )
    body.add_argument(
        "--unsigned-payload",
        action="store_true",
        help="Do not hash the body (UNSIGNED-PAYLOAD)",
    )
    _add_common_arguments(parser)
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)

    payload: bytes | PayloadMarker = b""
    if args.unsigned_payload:
        payload = PayloadMarker.UNSIGNED
    elif args.data is not None:
        payload = args.data.encode("utf-8")

    try:
        if args.data_file is not None:
            payload = args.data_file.read_bytes()
        signer = _make_signer(args)
        request = RequestDescriptor.from_url(
            args.method, args.url, headers=args.headers, payload=payload
        )
        signed = signer.add_auth(request)
    except (SigningError, ConfigError, OSError) as e:
        logger.error("%s", e)
        return 1

    for name, value in signed.headers:
        print(f"{name}: {value}")
    return 0


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "presign": "cmd_presign",
    "sign": "cmd_sign",
}


def cli() -> None:
    """Entry point for the ``sigv4`` console script."""
    argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _SUBCOMMANDS:
        print(f"sigv4: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    # Look up handler by name so tests can mock individual commands.
    import sigv4.cli as _self

    handler = getattr(_self, _DISPATCH[argv[0]])
    sys.exit(handler(argv[1:]))

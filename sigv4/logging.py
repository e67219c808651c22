# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging configuration with credential redaction.

Signing code only logs scopes, header names and hashes, but callers
often log the requests they sign.  ``SecretFilter`` keeps secret access
keys and session tokens out of that output.

Usage:
    # In entry points (CLI)
    from sigv4.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.debug("Signing scope: %s", scope)
"""

import logging
import re
from typing import TYPE_CHECKING, ClassVar


if TYPE_CHECKING:
    from sigv4.types import Credentials


REDACTED = "[REDACTED]"


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    The registry is shared by all instances, so a secret registered by
    one signer is redacted by every handler carrying the filter.

    Example:
        filter = SecretFilter()
        SecretFilter.register_secret("wJalrXUtnFEMI/K7MDENG")
        handler.addFilter(filter)
        logger.info("secret=%s", "wJalrXUtnFEMI/K7MDENG")
        # Output: "secret=[REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact registered secrets from the record.

        Args:
            record: The log record to filter.

        Returns:
            Always True (record is never suppressed, only modified).
        """
        if self._pattern is None:
            return True
        try:
            # Secrets nested in tuples or objects only show up once
            # the message is formatted
            message = record.getMessage()
        except (TypeError, ValueError):
            record.msg = self._pattern.sub(REDACTED, str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub(REDACTED, str(arg))
                    for arg in record.args
                )
            return True
        record.msg = self._pattern.sub(REDACTED, message)
        record.args = ()
        return True

    @classmethod
    def register_secret(cls, secret: str | None) -> None:
        """Register a secret to be redacted from all log output.

        Empty values and already registered secrets are ignored.
        """
        if secret and secret not in cls._secrets:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def register_credentials(cls, credentials: "Credentials") -> None:
        """Register the secret parts of a credential tuple."""
        cls.register_secret(credentials.secret_access_key)
        cls.register_secret(credentials.session_token)

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        if not cls._secrets:
            cls._pattern = None
            return
        # Longest first so a secret containing another is fully replaced
        escaped = [
            re.escape(s) for s in sorted(cls._secrets, key=len, reverse=True)
        ]
        cls._pattern = re.compile("|".join(escaped))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: The logging level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses default format.
        add_secret_filter: Whether to add the SecretFilter to redact secrets.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: The logger name, typically __name__.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)

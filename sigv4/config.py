# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signer policy configuration.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/sigv4/sigv4.yaml``
    (typically ``~/.config/sigv4/sigv4.yaml``)

``!env`` tags resolve values from environment variables::

    region: !env AWS_REGION
    service: s3
    max_expires: 604800
    key_cache:
      enabled: true
      max_entries: 64

Credentials are deliberately not part of this file.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "sigv4"

#: Longest presigned URL lifetime S3 accepts (7 days).
DEFAULT_MAX_EXPIRES = 604800

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

_SCHEMES = frozenset({"http", "https"})


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/sigv4/sigv4.yaml``.

    Returns:
        Path to the config file.
    """
    return user_config_path(_APP_NAME) / "sigv4.yaml"


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _resolve(
    value: object, coerce: type[Any], *, default: Any, name: str
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None or a literal).
        coerce: Target type (``str``, ``int`` or ``bool``).
        default: Value used when the entry or env var is absent.
        name: Dotted config key, used in error messages.

    Returns:
        The resolved, coerced value.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if isinstance(value, _EnvVar):
        value = os.environ.get(value.var_name)
    if value is None:
        return default
    if coerce is bool:
        return _coerce_bool(value)
    if isinstance(value, bool) and coerce is int:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")
    if isinstance(value, coerce):
        return value
    try:
        return coerce(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"'{name}' must be {coerce.__name__}, got {value!r}"
        ) from e


@dataclass(frozen=True)
class SignerConfig:
    """Policy settings for a signer.

    Attributes:
        region: Default region for signing scopes.
        service: Default service signing name.
        scheme: URL scheme used when rendering presigned URLs.
        max_expires: Upper bound for presigned URL expiry, in seconds.
        default_expires: Expiry used when the caller does not pass one.
        clock_skew_minutes: Allowed drift when verifying signatures.
        key_cache_enabled: Whether to cache derived signing keys.
        key_cache_max_entries: Size bound for the key cache.
    """

    region: str | None = None
    service: str | None = None
    scheme: str = "https"
    max_expires: int = DEFAULT_MAX_EXPIRES
    default_expires: int = 3600
    clock_skew_minutes: int = 5
    key_cache_enabled: bool = True
    key_cache_max_entries: int = 64

    def __post_init__(self) -> None:
        """Validate value ranges.

        Raises:
            ConfigError: If validation fails.
        """
        if self.scheme not in _SCHEMES:
            raise ConfigError(
                f"scheme must be one of {sorted(_SCHEMES)}, got {self.scheme!r}"
            )
        if self.max_expires < 1:
            raise ConfigError("max_expires must be positive")
        if not 1 <= self.default_expires <= self.max_expires:
            raise ConfigError(
                f"default_expires must be between 1 and {self.max_expires}"
            )
        if self.clock_skew_minutes < 0:
            raise ConfigError("clock_skew_minutes cannot be negative")
        if self.key_cache_max_entries < 1:
            raise ConfigError("key_cache.max_entries must be positive")

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "SignerConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to YAML config file.  Defaults to
                ``~/.config/sigv4/sigv4.yaml`` (XDG).

        Returns:
            SignerConfig instance.

        Raises:
            ConfigError: If the file is missing or a value is invalid.
        """
        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        config = cls.from_dict(raw)
        logger.debug("Signer config loaded from %s", config_path)
        return config

    @classmethod
    def from_dict(cls, raw: dict) -> "SignerConfig":
        """Build config from a parsed (but unresolved) YAML dict."""
        key_cache = raw.get("key_cache") or {}
        if not isinstance(key_cache, dict):
            raise ConfigError("'key_cache' must be a YAML mapping")

        return cls(
            region=_resolve(
                raw.get("region"), str, default=None, name="region"
            ),
            service=_resolve(
                raw.get("service"), str, default=None, name="service"
            ),
            scheme=_resolve(
                raw.get("scheme"), str, default="https", name="scheme"
            ),
            max_expires=_resolve(
                raw.get("max_expires"),
                int,
                default=DEFAULT_MAX_EXPIRES,
                name="max_expires",
            ),
            default_expires=_resolve(
                raw.get("default_expires"),
                int,
                default=3600,
                name="default_expires",
            ),
            clock_skew_minutes=_resolve(
                raw.get("clock_skew_minutes"),
                int,
                default=5,
                name="clock_skew_minutes",
            ),
            key_cache_enabled=_resolve(
                key_cache.get("enabled"),
                bool,
                default=True,
                name="key_cache.enabled",
            ),
            key_cache_max_entries=_resolve(
                key_cache.get("max_entries"),
                int,
                default=64,
                name="key_cache.max_entries",
            ),
        )

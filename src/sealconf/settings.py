"""
Library settings for sealconf.

sealconf has no settings file of its own; its few knobs are read from
environment variables prefixed with SEALCONF_, converted, and validated.
Explicit arguments passed to the loaders always take precedence over these
values.
"""

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sealconf.errors import SettingsError

SUPPORTED_LANGUAGES = ("en", "de")

_TRUE_STRINGS = {"1", "t", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "f", "false", "no", "off", ""}


@dataclass
class Settings:
    """
    Runtime settings for sealconf.

    Attributes:
        language: Language of the marker written after sealing. Empty means
                  detect from the locale environment.
        probe_timeout: Seconds allowed for each hardware probe command.
        strict_pairs: Treat secure fields without a plaintext sibling as errors.
        nested_versions: Reconcile Version fields at every nesting depth
                         instead of the top-level record only.
        file_mode: Permission bits for rewritten configuration files.
    """

    language: str = ""
    probe_timeout: float = 5.0
    strict_pairs: bool = False
    nested_versions: bool = False
    file_mode: int = 0o600


def parse_bool(value: str) -> bool:
    """
    Parse a boolean from an environment-style string.

    Raises:
        ValueError: If the string is not a recognized boolean.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from SEALCONF_* environment variables.

    Args:
        environ: Environment mapping to read. Defaults to os.environ.

    Returns:
        Validated Settings instance.

    Raises:
        SettingsError: If a variable cannot be converted or is out of range.
    """
    settings = Settings()
    if environ is None:
        environ = os.environ
    settings = _apply_environment_overrides(settings, environ)
    _validate_settings(settings)
    return settings


def _apply_environment_overrides(
    settings: Settings, environ: Mapping[str, str]
) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "SEALCONF_LANGUAGE": ("language", lambda x: x.strip().lower()),
        "SEALCONF_PROBE_TIMEOUT": ("probe_timeout", float),
        "SEALCONF_STRICT_PAIRS": ("strict_pairs", parse_bool),
        "SEALCONF_NESTED_VERSIONS": ("nested_versions", parse_bool),
        "SEALCONF_FILE_MODE": ("file_mode", lambda x: int(x, 8)),
    }

    for env_var, (attr, converter) in env_map.items():
        value = environ.get(env_var)
        if value is None:
            continue
        try:
            setattr(settings, attr, converter(value))
        except ValueError as e:
            raise SettingsError(f"Invalid value for {env_var}: {e}") from e

    return settings


def _validate_settings(settings: Settings) -> None:
    """
    Validate settings.

    Raises:
        SettingsError: If settings are invalid.
    """
    if settings.language and settings.language not in SUPPORTED_LANGUAGES:
        raise SettingsError(
            f"Invalid language: {settings.language}. "
            f"Must be one of: {', '.join(SUPPORTED_LANGUAGES)}"
        )

    if settings.probe_timeout <= 0:
        raise SettingsError("probe_timeout must be greater than 0")

    if not 0 <= settings.file_mode <= 0o777:
        raise SettingsError(f"Invalid file_mode: {oct(settings.file_mode)}")

"""
.env file loading with transparent password sealing.

The flat form of load_config(): a line-oriented KEY=VALUE file where

    DB_PASSWORD=s3cret
    DB_SECURE_PASSWORD=

becomes, after the first load,

    DB_PASSWORD=Enter new password here
    DB_SECURE_PASSWORD=<sealed value>

while DB_PASSWORD reads as "s3cret" through EnvLoader.get() and the process
environment. Comments, blank lines and quoting are preserved on rewrite.
Pairing is by key suffix, case-insensitively (_SECURE_PASSWORD / _PASSWORD).
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sealconf.config.files import read_text, write_secure_file
from sealconf.errors import DecryptionError
from sealconf.settings import Settings, load_settings
from sealconf.vault.context import VaultContext, default_context

logger = logging.getLogger(__name__)

_SECURE_KEY_RE = re.compile(r"^(.+)_SECURE_PASSWORD$", re.IGNORECASE)
_QUOTES = ("'", '"')


@dataclass
class EnvLine:
    """
    One line of a .env file.

    Attributes:
        raw: The line as read, written back verbatim unless it is a variable.
        key: Variable name, or None for comments, blank and unparsable lines.
        value: Unquoted value.
        quote: Quote character the value was wrapped in, or "".
    """

    raw: str
    key: str | None = None
    value: str = ""
    quote: str = ""

    def render(self, value: str) -> str:
        if self.key is None:
            return self.raw
        return f"{self.key}={self.quote}{value}{self.quote}"


def parse_env(text: str) -> list[EnvLine]:
    """Split .env content into lines, parsing KEY=VALUE assignments."""
    lines = []
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#") or "=" not in raw:
            lines.append(EnvLine(raw=raw))
            continue

        key, _, value = raw.partition("=")
        key = key.strip()
        value = value.strip()
        if not key:
            lines.append(EnvLine(raw=raw))
            continue

        quote = ""
        if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
            quote = value[0]
            value = value[1:-1]
        lines.append(EnvLine(raw=raw, key=key, value=value, quote=quote))
    return lines


def render_env(lines: list[EnvLine], values: dict[str, str]) -> str:
    """Re-render parsed lines with updated values."""
    output = []
    for line in lines:
        if line.key is None:
            output.append(line.raw)
        else:
            output.append(line.render(values.get(line.key, line.value)))
    return "\n".join(output) + "\n"


def password_pairs(values: dict[str, str]) -> list[tuple[str, str]]:
    """
    Find (secure key, plaintext key) pairs, matching case-insensitively.

    Secure keys without a plaintext sibling are skipped.
    """
    by_lower = {key.lower(): key for key in values}
    pairs = []
    for key in values:
        match = _SECURE_KEY_RE.match(key)
        if not match:
            continue
        sibling = by_lower.get(f"{match.group(1)}_password".lower())
        if sibling is None:
            logger.debug("Skipping %s: no plaintext sibling", key)
            continue
        pairs.append((key, sibling))
    return pairs


class EnvLoader:
    """
    Loads .env files into a cache and the process environment.

    Usage:
        loader = EnvLoader()
        loader.load(".env")
        password = loader.get("DB_PASSWORD")

    Attributes:
        environ: Environment mapping values are published to.
    """

    def __init__(
        self,
        context: VaultContext | None = None,
        environ: MutableMapping[str, str] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._context = context
        self.environ = os.environ if environ is None else environ
        self._settings = settings
        self._cache: dict[str, str] = {}
        self._loaded = False
        self._path: Path | None = None

    @property
    def is_loaded(self) -> bool:
        """True once load() has completed."""
        return self._loaded

    @property
    def path(self) -> Path | None:
        """Path of the last loaded file."""
        return self._path

    def load(
        self, path: str | Path = ".env", override: bool = False, clean_config: bool = False
    ) -> bool:
        """
        Load a .env file, sealing new passwords.

        Args:
            path: Path to the .env file. A missing file is treated as empty.
            override: Replace variables already present in the environment.
            clean_config: Write plaintext passwords back to the file
                          (migration or inspection only).

        Returns:
            True if the file was rewritten.

        Raises:
            FileReadError: If the file exists but cannot be read.
            FileWriteError: If the file cannot be rewritten.
            DecryptionError: If a sealed password does not open on this host.
        """
        path = Path(path)
        if self._settings is None:
            self._settings = load_settings()
        if self._context is None:
            self._context = default_context(self._settings)

        lines = parse_env(read_text(path) or "")
        values = {line.key: line.value for line in lines if line.key is not None}
        pairs = password_pairs(values)

        changed = self._seal(values, pairs)

        if clean_config:
            self._decrypt(values, pairs)
            changed = True

        if changed:
            write_secure_file(path, render_env(lines, values), self._settings.file_mode)
            logger.info("Rewrote env file %s", path)

        if not clean_config:
            self._decrypt(values, pairs)

        for key, value in values.items():
            if override or key not in self.environ:
                self.environ[key] = value
                self._cache[key] = value

        self._path = path
        self._loaded = True
        return changed

    def _seal(self, values: dict[str, str], pairs: list[tuple[str, str]]) -> bool:
        changed = False
        markers = self._context.markers
        for secure_key, plain_key in pairs:
            plaintext = values[plain_key]
            if not plaintext or markers.is_secure_marker(plaintext):
                continue
            values[secure_key] = self._context.codec.seal(plaintext)
            values[plain_key] = markers.current_marker
            logger.info("Sealed new secret in %s", plain_key)
            changed = True
        return changed

    def _decrypt(self, values: dict[str, str], pairs: list[tuple[str, str]]) -> None:
        for secure_key, plain_key in pairs:
            sealed = values[secure_key]
            if not sealed:
                continue
            try:
                values[plain_key] = self._context.codec.open(sealed)
            except DecryptionError as e:
                raise DecryptionError(f"Cannot decrypt {plain_key}: {e}", field=plain_key) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Return a variable from the cache, then the environment, else default."""
        if key in self._cache:
            return self._cache[key]
        return self.environ.get(key, default)

    def has(self, key: str) -> bool:
        """Check if a variable is loaded or present in the environment."""
        return key in self._cache or key in self.environ

    def clear(self) -> None:
        """Forget cached values and loaded state. The environment is untouched."""
        self._cache.clear()
        self._loaded = False
        self._path = None


_default_loader: EnvLoader | None = None


def _loader() -> EnvLoader:
    global _default_loader
    if _default_loader is None:
        _default_loader = EnvLoader()
    return _default_loader


def load_env(
    path: str | Path = ".env", override: bool = False, clean_config: bool = False
) -> bool:
    """Load a .env file with the module-level loader. See EnvLoader.load()."""
    return _loader().load(path, override=override, clean_config=clean_config)


def env(key: str, default: Any = None) -> Any:
    """Get a variable through the module-level loader."""
    return _loader().get(key, default)


def has_env(key: str) -> bool:
    """Check a variable through the module-level loader."""
    return _loader().has(key)

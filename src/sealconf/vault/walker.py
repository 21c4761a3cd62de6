"""
Record walker that seals and opens password pairs.

A password pair is two sibling fields of the same record, a plaintext field and
a secure field, named by suffix convention:

    DBPassword      / DBSecurePassword
    db_password     / db_secure_password

In SEAL mode any plaintext that is neither empty nor a marker is sealed into
the secure field and replaced by the marker. In DECRYPT mode every non-empty
secure field is opened and the plaintext field overwritten, so the caller sees
the real secret in memory while the file only ever stores the sealed value.

Records are dataclass instances or mutable mappings; nested records and lists
of records are walked recursively.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator, MutableMapping
from enum import Enum
from typing import Any

from sealconf.errors import DecryptionError, OrphanedSecureFieldError
from sealconf.vault.context import VaultContext

logger = logging.getLogger(__name__)

# (secure suffix, plaintext suffix), matched case-sensitively
PAIR_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("SecurePassword", "Password"),
    ("_secure_password", "_password"),
)

VERSION_FIELDS = ("Version", "version")


class WalkMode(Enum):
    """What a walk does to password pairs."""

    SEAL = "seal"
    DECRYPT = "decrypt"


def is_record(value: Any) -> bool:
    """Return True for values the walker descends into."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return isinstance(value, MutableMapping)


def plaintext_name(secure_name: str) -> str | None:
    """Return the sibling plaintext field name for a secure field, if any."""
    for secure_suffix, plain_suffix in PAIR_SUFFIXES:
        if secure_name.endswith(secure_suffix):
            return secure_name[: -len(secure_suffix)] + plain_suffix
    return None


def _field_names(record: Any) -> list[str]:
    if isinstance(record, MutableMapping):
        return [key for key in record if isinstance(key, str)]
    return [f.name for f in dataclasses.fields(record)]


def _get(record: Any, name: str) -> Any:
    if isinstance(record, MutableMapping):
        return record[name]
    return getattr(record, name)


def _set(record: Any, name: str, value: Any) -> None:
    if isinstance(record, MutableMapping):
        record[name] = value
    else:
        setattr(record, name, value)


def _has(record: Any, name: str) -> bool:
    if isinstance(record, MutableMapping):
        return name in record
    return any(f.name == name for f in dataclasses.fields(record))


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


class SecretWalker:
    """
    Walks a record graph sealing or opening password pairs.

    Usage:
        walker = SecretWalker(context)
        changed = walker.walk(config, WalkMode.SEAL, version=3)
        walker.walk(config, WalkMode.DECRYPT)

    Attributes:
        context: VaultContext supplying the codec and markers.
        strict_pairs: Raise OrphanedSecureFieldError for secure fields without
                      a plaintext sibling instead of skipping them.
        nested_versions: Reconcile Version fields in nested records too.
    """

    def __init__(
        self,
        context: VaultContext,
        strict_pairs: bool = False,
        nested_versions: bool = False,
    ) -> None:
        self.context = context
        self.strict_pairs = strict_pairs
        self.nested_versions = nested_versions

    def walk(self, record: Any, mode: WalkMode, version: int | None = None) -> bool:
        """
        Walk a record in the given mode.

        Args:
            record: Dataclass instance or mutable mapping.
            mode: WalkMode.SEAL or WalkMode.DECRYPT.
            version: Expected version, reconciled in SEAL mode when given.

        Returns:
            True if any field was sealed or any version updated.

        Raises:
            DecryptionError: In DECRYPT mode, on the first secret that does
                             not open. The walk stops there.
            OrphanedSecureFieldError: In strict mode, for an unpaired secure field.
        """
        if not is_record(record):
            raise TypeError(f"expected a dataclass instance or mapping, got {type(record).__name__}")
        changed = self._walk_record(record, mode, version, path="", depth=0)
        logger.debug("%s walk finished (changed: %s)", mode.value, changed)
        return changed

    def _walk_record(
        self, record: Any, mode: WalkMode, version: int | None, path: str, depth: int
    ) -> bool:
        changed = False
        for name in _field_names(record):
            value = _get(record, name)
            field_path = _join(path, name)

            if is_record(value):
                changed |= self._walk_record(value, mode, version, field_path, depth + 1)
            elif isinstance(value, (list, tuple)):
                for index, element in self._record_elements(value):
                    changed |= self._walk_record(
                        element, mode, version, f"{field_path}[{index}]", depth + 1
                    )
            else:
                if mode is WalkMode.SEAL and name in VERSION_FIELDS:
                    changed |= self._reconcile_version(record, name, version, depth)
                sibling = plaintext_name(name)
                if sibling is not None:
                    changed |= self._visit_pair(record, name, sibling, mode, path)
        return changed

    @staticmethod
    def _record_elements(values: list | tuple) -> Iterator[tuple[int, Any]]:
        for index, element in enumerate(values):
            if is_record(element):
                yield index, element

    def _reconcile_version(
        self, record: Any, name: str, version: int | None, depth: int
    ) -> bool:
        if version is None or (depth > 0 and not self.nested_versions):
            return False
        current = _get(record, name)
        if isinstance(current, bool) or not (current is None or isinstance(current, int)):
            return False
        if current == version:
            return False
        logger.info("Updating %s from %s to %s", name, current, version)
        _set(record, name, version)
        return True

    def _visit_pair(
        self, record: Any, secure_name: str, plain_name: str, mode: WalkMode, path: str
    ) -> bool:
        if not _has(record, plain_name):
            if self.strict_pairs:
                raise OrphanedSecureFieldError(
                    f"Secure field {_join(path, secure_name)!r} has no "
                    f"{plain_name!r} sibling"
                )
            logger.debug("Skipping %s: no %s sibling", _join(path, secure_name), plain_name)
            return False

        secure_value = _get(record, secure_name)
        plain_value = _get(record, plain_name)
        string_like = (str, type(None))
        if not isinstance(secure_value, string_like) or not isinstance(plain_value, string_like):
            logger.debug("Skipping %s: pair is not string-typed", _join(path, plain_name))
            return False

        if mode is WalkMode.SEAL:
            if not plain_value or self.context.markers.is_secure_marker(plain_value):
                return False
            _set(record, secure_name, self.context.codec.seal(plain_value))
            _set(record, plain_name, self.context.markers.current_marker)
            logger.info("Sealed new secret in %s", _join(path, plain_name))
            return True

        if secure_value:
            field_path = _join(path, plain_name)
            try:
                plaintext = self.context.codec.open(secure_value)
            except DecryptionError as e:
                raise DecryptionError(f"Cannot decrypt {field_path}: {e}", field=field_path) from e
            _set(record, plain_name, plaintext)
        return False

"""
Structured configuration loading with transparent password sealing.

load_config() reads a JSON or YAML file into a caller-owned record and runs
the full lifecycle:

    read -> apply defaults -> decode -> seal new secrets / sync Version
         -> rewrite file if anything changed -> decrypt secrets in memory

The file on disk only ever contains the sealed value and a marker for each
secret; the caller's record holds the plaintext.
"""

from __future__ import annotations

import json
import logging
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import yaml

from sealconf.config.files import read_text, write_secure_file
from sealconf.config.schema import apply_defaults, decode_into, is_dataclass_instance, to_data
from sealconf.errors import DeserializationError
from sealconf.settings import Settings, load_settings
from sealconf.vault.context import HardwareIdSource, VaultContext, default_context
from sealconf.vault.walker import SecretWalker, WalkMode

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def is_yaml_path(path: Path) -> bool:
    return path.suffix.lower() in YAML_SUFFIXES


def parse_config(text: str, path: Path) -> Any:
    """
    Parse file content by file suffix.

    Raises:
        DeserializationError: If the content is not valid JSON / YAML.
    """
    if is_yaml_path(path):
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise DeserializationError(f"Invalid YAML in config file {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DeserializationError(f"Invalid JSON in config file {path}: {e}") from e


def render_config(record: Any, path: Path) -> str:
    """Serialize a record in declared field order."""
    data = to_data(record)
    if is_yaml_path(path):
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def resolve_context(
    context: VaultContext | None,
    hardware_id: HardwareIdSource | None,
    settings: Settings | None = None,
) -> VaultContext:
    """Pick the explicit context, a context for hardware_id, or the default."""
    if context is not None:
        return context
    if hardware_id is not None:
        return VaultContext.from_hardware_id(hardware_id, settings=settings)
    return default_context(settings)


def load_config(
    record: Any,
    version: int | None,
    path: str | Path,
    clean_config: bool = False,
    hardware_id: HardwareIdSource | None = None,
    context: VaultContext | None = None,
    strict_pairs: bool | None = None,
    nested_versions: bool | None = None,
    settings: Settings | None = None,
) -> bool:
    """
    Load a configuration file into a record, sealing new secrets.

    A missing file is treated as empty: all defaults apply, and the file is
    created if sealing or version sync changed anything.

    Args:
        record: Dataclass instance or mutable mapping, mutated in place.
        version: Expected configuration version. A top-level Version field
                 holding another value is updated and the file rewritten.
                 None skips version handling.
        path: Path to the .json / .yaml / .yml file.
        clean_config: Write plaintext secrets back to the file (migration or
                      inspection only). The file is always rewritten.
        hardware_id: Callable returning the machine identifier, overriding
                     host fingerprinting (tests, migrations).
        context: Explicit VaultContext. Takes precedence over hardware_id.
        strict_pairs: Override settings.strict_pairs.
        nested_versions: Override settings.nested_versions.
        settings: Library settings. Defaults to load_settings(). Their
                  marker language and probe timeout apply to the context
                  built here; an explicit context keeps its own.

    Returns:
        True if the file was rewritten.

    Raises:
        TypeError: If record is not a dataclass instance or mutable mapping.
        HardwareIdentificationError: If no key can be derived for this host.
        FileReadError: If the file exists but cannot be read.
        DeserializationError: If the content is malformed or misshapen.
        DefaultValueError / UnsupportedFieldTypeError: For bad setting() defaults.
        OrphanedSecureFieldError: In strict mode, for an unpaired secure field.
        FileWriteError: If the file cannot be rewritten.
        DecryptionError: If a sealed secret does not open under this host's key.
    """
    if not (is_dataclass_instance(record) or isinstance(record, MutableMapping)):
        raise TypeError(
            f"record must be a dataclass instance or mutable mapping, got {type(record).__name__}"
        )

    path = Path(path)
    if settings is None:
        settings = load_settings()
    vault = resolve_context(context, hardware_id, settings)
    walker = SecretWalker(
        vault,
        strict_pairs=settings.strict_pairs if strict_pairs is None else strict_pairs,
        nested_versions=settings.nested_versions if nested_versions is None else nested_versions,
    )

    text = read_text(path)
    if text is None:
        logger.debug("Config file %s does not exist, using defaults", path)
        data: Any = {}
    else:
        data = parse_config(text, path)

    apply_defaults(record)
    decode_into(record, data)

    changed = walker.walk(record, WalkMode.SEAL, version)

    if clean_config:
        walker.walk(record, WalkMode.DECRYPT)
        changed = True

    if changed:
        write_secure_file(path, render_config(record, path), settings.file_mode)
        logger.info("Rewrote config file %s", path)

    if not clean_config:
        walker.walk(record, WalkMode.DECRYPT)

    return changed

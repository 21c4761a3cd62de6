"""
sealconf - configuration files with machine-bound password sealing

Loads JSON, YAML and .env configuration files and keeps their secrets out of
plain sight. Every `<Name>Password` field that holds a new plaintext is
encrypted into its `<Name>SecurePassword` sibling and replaced on disk by a
"enter new password here" marker; in memory the caller always sees the
plaintext.

Key Features:
    - AES-256-GCM sealing with a key derived from the host's hardware
      fingerprint, never stored anywhere
    - Nested records and lists of records are handled recursively
    - Defaults declared on dataclass fields, Version field kept in sync
    - Comments and quoting of .env files preserved on rewrite
"""

__version__ = "1.2.0"

from sealconf.config import EnvLoader, env, has_env, load_config, load_env, setting
from sealconf.errors import (
    DecryptionError,
    DefaultValueError,
    DeserializationError,
    FileReadError,
    FileWriteError,
    HardwareIdentificationError,
    OrphanedSecureFieldError,
    SealconfError,
    SettingsError,
    UnsupportedFieldTypeError,
)
from sealconf.vault import VaultContext

__all__ = [
    "__version__",
    "load_config",
    "setting",
    "EnvLoader",
    "load_env",
    "env",
    "has_env",
    "VaultContext",
    # Errors
    "SealconfError",
    "HardwareIdentificationError",
    "FileReadError",
    "FileWriteError",
    "DeserializationError",
    "UnsupportedFieldTypeError",
    "DefaultValueError",
    "DecryptionError",
    "OrphanedSecureFieldError",
    "SettingsError",
]

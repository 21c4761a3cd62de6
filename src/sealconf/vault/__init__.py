"""
Password vault: machine-bound keys, AEAD sealing and record walking.

Security Note (Threat Model):
    Sealed values can only be opened on the host whose hardware fingerprint
    produced the key. This protects configuration files that are copied,
    backed up or committed by accident. It does not protect against anyone
    who can run code on the host itself, since the key is re-derivable there.
"""

from sealconf.vault.codec import SecretCodec
from sealconf.vault.context import VaultContext, default_context, reset_default_context
from sealconf.vault.fingerprint import (
    DarwinProbe,
    GenericProbe,
    HardwareProbe,
    LinuxProbe,
    StaticProbe,
    WindowsProbe,
    collect_identifiers,
    fold_identifiers,
    get_hardware_id,
    probe_for_platform,
)
from sealconf.vault.keys import derive_key
from sealconf.vault.markers import DEFAULT_MARKERS, PlaceholderRegistry, detect_language
from sealconf.vault.walker import SecretWalker, WalkMode

__all__ = [
    # Fingerprint
    "HardwareProbe",
    "LinuxProbe",
    "WindowsProbe",
    "DarwinProbe",
    "GenericProbe",
    "StaticProbe",
    "probe_for_platform",
    "collect_identifiers",
    "fold_identifiers",
    "get_hardware_id",
    # Keys and codec
    "derive_key",
    "SecretCodec",
    # Markers
    "DEFAULT_MARKERS",
    "PlaceholderRegistry",
    "detect_language",
    # Context and walker
    "VaultContext",
    "default_context",
    "reset_default_context",
    "SecretWalker",
    "WalkMode",
]

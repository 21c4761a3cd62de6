"""
Vault context: the derived key and marker registry used by the loaders.

A VaultContext is built once, ideally at application startup, and passed to
load_config() / EnvLoader. The key is derived in the constructor and never
recomputed. For callers that do not manage a context themselves,
default_context() builds a process-wide one on first use under a lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from sealconf.settings import Settings, load_settings
from sealconf.vault.codec import SecretCodec
from sealconf.vault.fingerprint import HardwareProbe, get_hardware_id, probe_for_platform
from sealconf.vault.keys import derive_key
from sealconf.vault.markers import PlaceholderRegistry

logger = logging.getLogger(__name__)

HardwareIdSource = Callable[[], int]

# Keyed by (language, probe_timeout), the settings a context depends on
_default_contexts: dict[tuple[str, float], VaultContext] = {}
_default_lock = threading.Lock()


class VaultContext:
    """
    Holds the codec bound to this host's key and the marker registry.

    Attributes:
        codec: SecretCodec keyed with the derived machine key.
        markers: PlaceholderRegistry for the active language.
    """

    def __init__(self, codec: SecretCodec, markers: PlaceholderRegistry) -> None:
        self.codec = codec
        self.markers = markers

    @classmethod
    def from_hardware_id(
        cls,
        hardware_id: int | HardwareIdSource | None = None,
        language: str | None = None,
        probe: HardwareProbe | None = None,
        settings: Settings | None = None,
    ) -> VaultContext:
        """
        Build a context whose key is derived from a hardware identifier.

        Args:
            hardware_id: Fixed identifier, or a callable returning one. When
                         omitted the host is fingerprinted.
            language: Marker language. Defaults to settings / locale detection.
            probe: Probe used when fingerprinting the host.
            settings: Library settings. Defaults to load_settings().

        Raises:
            HardwareIdentificationError: If the host cannot be fingerprinted.
        """
        if settings is None:
            settings = load_settings()

        if hardware_id is None:
            if probe is None:
                probe = probe_for_platform(timeout=settings.probe_timeout)
            machine_id = get_hardware_id(probe)
        elif callable(hardware_id):
            machine_id = hardware_id()
        else:
            machine_id = hardware_id

        markers = PlaceholderRegistry(language or settings.language or None)
        logger.debug("Vault context ready (marker language: %s)", markers.language)
        return cls(SecretCodec(derive_key(machine_id)), markers)


def default_context(settings: Settings | None = None) -> VaultContext:
    """
    Return the process-wide context, fingerprinting the host on first call.

    One context is kept per marker language and probe timeout, so callers
    passing different settings each get a context built from them.
    Concurrent first calls are serialized; the first one to finish wins and
    later calls with the same settings return the same instance.

    Args:
        settings: Library settings. Defaults to load_settings().
    """
    if settings is None:
        settings = load_settings()
    key = (settings.language, settings.probe_timeout)
    with _default_lock:
        if key not in _default_contexts:
            _default_contexts[key] = VaultContext.from_hardware_id(settings=settings)
        return _default_contexts[key]


def reset_default_context() -> None:
    """Forget the process-wide context (used by tests)."""
    with _default_lock:
        _default_contexts.clear()

"""
Localized placeholders written into plaintext password fields.

After a secret is sealed its plaintext field holds a human-readable marker
telling the operator where to type a new password. Every registered language's
marker is recognized on read, so a file sealed under a German locale is not
re-encrypted when later loaded under an English one.
"""

import os
from collections.abc import Mapping

DEFAULT_LANGUAGE = "en"

DEFAULT_MARKERS: Mapping[str, str] = {
    "en": "Enter new password here",
    "de": "Hier neues Passwort eintragen",
}

# Checked in order, as gettext does
_LOCALE_VARIABLES = ("LANGUAGE", "LC_ALL", "LC_MESSAGES", "LANG")


def detect_language(
    environ: Mapping[str, str] | None = None,
    supported: tuple[str, ...] = tuple(DEFAULT_MARKERS),
) -> str:
    """
    Detect the active language from the locale environment.

    SEALCONF_LANGUAGE wins; otherwise the first locale variable whose value
    starts with a supported language code (e.g. "de_DE.UTF-8") decides.
    Falls back to English.
    """
    if environ is None:
        environ = os.environ

    explicit = environ.get("SEALCONF_LANGUAGE", "").strip().lower()
    if explicit in supported:
        return explicit

    for variable in _LOCALE_VARIABLES:
        value = environ.get(variable, "").strip().lower()
        if not value:
            continue
        for language in supported:
            if value.startswith(language):
                return language
    return DEFAULT_LANGUAGE


class PlaceholderRegistry:
    """
    Lookup table of secure markers.

    Attributes:
        language: Language whose marker is written after sealing.
    """

    def __init__(
        self,
        language: str | None = None,
        markers: Mapping[str, str] = DEFAULT_MARKERS,
    ) -> None:
        self._markers = dict(markers)
        if DEFAULT_LANGUAGE not in self._markers:
            raise ValueError(f"markers must include the {DEFAULT_LANGUAGE!r} language")

        if not language:
            language = detect_language(supported=tuple(self._markers))
        self.language = language if language in self._markers else DEFAULT_LANGUAGE
        self._recognized = frozenset(self._markers.values())

    @property
    def current_marker(self) -> str:
        """The marker written into a plaintext field after sealing."""
        return self._markers[self.language]

    def is_secure_marker(self, value: str) -> bool:
        """Return True if value is any recognized marker."""
        return value in self._recognized

    def __repr__(self) -> str:
        return f"PlaceholderRegistry(language={self.language!r}, languages={sorted(self._markers)})"

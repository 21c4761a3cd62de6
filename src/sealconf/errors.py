"""
Exception hierarchy for sealconf.

Every error raised by the library derives from SealconfError so that callers
(and the CLI) can handle the whole family in one place. Errors are raised with
the field path or file name involved and chained to the underlying cause.
"""


class SealconfError(Exception):
    """Base exception for sealconf errors."""

    pass


class HardwareIdentificationError(SealconfError):
    """Raised when no hardware identifier could be collected on this host."""

    pass


class FileReadError(SealconfError):
    """Raised when a configuration file exists but cannot be read."""

    pass


class FileWriteError(SealconfError):
    """Raised when a configuration file cannot be written back."""

    pass


class DeserializationError(SealconfError):
    """Raised when file content is malformed or does not fit the record shape."""

    pass


class UnsupportedFieldTypeError(SealconfError):
    """Raised when a default value targets a field type that cannot be coerced."""

    pass


class DefaultValueError(SealconfError):
    """Raised when a declared default cannot be parsed into its field type."""

    pass


class DecryptionError(SealconfError):
    """
    Raised when a sealed value does not open under the current key.

    The most common cause is a configuration file copied from another host,
    since the key is bound to the hardware it was derived on.

    Attributes:
        field: Dotted path of the secret that failed, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class OrphanedSecureFieldError(SealconfError):
    """Raised in strict mode when a secure field has no plaintext sibling."""

    pass


class SettingsError(SealconfError):
    """Raised when SEALCONF_* environment settings are invalid."""

    pass

"""
AEAD sealing of secret strings.

Format of a sealed value (standard base64 of the concatenation):

    [nonce 12B][ciphertext][GCM tag 16B]

A fresh random nonce is drawn for every seal, so sealing the same plaintext
twice gives two different values that both open to it.

Security Note:
    Never log plaintext or sealed values.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sealconf.errors import DecryptionError
from sealconf.vault.keys import KEY_LENGTH

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
MIN_SEALED_SIZE = NONCE_SIZE + TAG_SIZE


class SecretCodec:
    """
    Seal and open secrets with AES-256-GCM under a single key.

    Usage:
        codec = SecretCodec(derive_key(get_hardware_id()))
        sealed = codec.seal("s3cret")
        assert codec.open(sealed) == "s3cret"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"key must be exactly {KEY_LENGTH} bytes, got {len(key)}")
        self._cipher = AESGCM(key)

    def seal(self, plaintext: str) -> str:
        """
        Encrypt a plaintext secret.

        Args:
            plaintext: Secret to protect.

        Returns:
            Base64 text embedding nonce, ciphertext and tag.
        """
        nonce = os.urandom(NONCE_SIZE)
        ct = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ct).decode("ascii")

    def open(self, sealed: str) -> str:
        """
        Authenticate and decrypt a sealed value.

        Args:
            sealed: Value produced by seal().

        Returns:
            The original plaintext.

        Raises:
            DecryptionError: If the value is not valid base64, is too short,
                             does not authenticate under this key, or does not
                             decode as UTF-8.
        """
        try:
            data = base64.b64decode(sealed, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Sealed value is not valid base64") from e

        if len(data) < MIN_SEALED_SIZE:
            raise DecryptionError(
                f"Sealed value too short: {len(data)} bytes (minimum {MIN_SEALED_SIZE})"
            )

        nonce = data[:NONCE_SIZE]
        ct = data[NONCE_SIZE:]
        try:
            plaintext = self._cipher.decrypt(nonce, ct, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Sealed value does not authenticate under this host's key "
                "(file copied from another machine, or tampered with)"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not valid UTF-8") from e

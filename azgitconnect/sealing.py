"""Anonymous sealed-box encryption for GitHub Actions secrets.

GitHub accepts secret values only as libsodium sealed boxes addressed to the
repository's Curve25519 public key. A sealed box embeds a fresh ephemeral
public key in every ciphertext, so sealing the same value twice yields
different bytes and only the holder of the repository's private key can
open it.

Examples
--------
>>> from nacl.public import PrivateKey
>>> recipient = PrivateKey.generate()
>>> ciphertext = seal(b"s3cret", bytes(recipient.public_key))
>>> len(ciphertext) == len(b"s3cret") + SEAL_OVERHEAD
True

"""

from __future__ import annotations

import base64
import binascii

from nacl.public import PublicKey, SealedBox

from azgitconnect.errors import AzGitConnectError

# Ephemeral public key (32 bytes) plus Poly1305 tag (16 bytes).
SEAL_OVERHEAD = PublicKey.SIZE + 16


class InvalidPublicKeyError(AzGitConnectError, ValueError):
    """Raised when a recipient public key cannot be used for sealing."""

    @classmethod
    def wrong_length(cls, length: int) -> InvalidPublicKeyError:
        """Return an error for a key that is not a Curve25519 public key."""
        return cls(
            f"Recipient public key must be {PublicKey.SIZE} bytes, got {length}"
        )

    @classmethod
    def not_base64(cls) -> InvalidPublicKeyError:
        """Return an error for a key that is not valid base64."""
        return cls("Recipient public key is not valid base64")


def seal(plaintext: bytes, recipient_public_key: bytes) -> bytes:
    """Seal ``plaintext`` for the holder of ``recipient_public_key``.

    Parameters
    ----------
    plaintext
        Bytes to encrypt.
    recipient_public_key
        Raw 32-byte Curve25519 public key.

    Returns
    -------
    bytes
        Self-contained ciphertext: ephemeral public key followed by the
        authenticated box.

    Raises
    ------
    InvalidPublicKeyError
        If the key has the wrong length.

    """
    if len(recipient_public_key) != PublicKey.SIZE:
        raise InvalidPublicKeyError.wrong_length(len(recipient_public_key))
    box = SealedBox(PublicKey(recipient_public_key))
    return bytes(box.encrypt(plaintext))


def decode_public_key(public_key_b64: str) -> bytes:
    """Decode a base64 public key as returned by the GitHub API."""
    try:
        return base64.b64decode(public_key_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPublicKeyError.not_base64() from exc


def seal_secret(value: str, public_key_b64: str) -> str:
    """Seal a text secret and return base64 ciphertext for the GitHub API."""
    ciphertext = seal(value.encode("utf-8"), decode_public_key(public_key_b64))
    return base64.b64encode(ciphertext).decode("ascii")


__all__ = [
    "SEAL_OVERHEAD",
    "InvalidPublicKeyError",
    "decode_public_key",
    "seal",
    "seal_secret",
]

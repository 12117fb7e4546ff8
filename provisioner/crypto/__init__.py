"""Decryption primitives behind a narrow ``(ciphertext, passphrase) -> plaintext`` interface."""

from __future__ import annotations

from typing import Any, Dict, Tuple

from ..errors import ValidationError
from .base import Cipher, DecryptFn
from .fernet import FernetCipher
from .gpg import GpgCipher

CIPHER_KINDS: Tuple[str, ...] = ("gpg", "fernet")


def get_cipher(kind: str, **settings: Any) -> Cipher:
    """Build a cipher by kind. Unknown kinds and settings are rejected."""
    k = str(kind or "").strip()
    factories: Dict[str, Any] = {"gpg": GpgCipher, "fernet": FernetCipher}
    if k not in factories:
        raise ValidationError(f"unknown cipher kind {kind!r} (allowed: {list(CIPHER_KINDS)})")
    try:
        return factories[k](**settings)
    except TypeError as e:
        raise ValidationError(f"invalid settings for cipher {k!r}: {e}") from e


__all__ = ["CIPHER_KINDS", "Cipher", "DecryptFn", "FernetCipher", "GpgCipher", "get_cipher"]

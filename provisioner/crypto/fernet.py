"""Passphrase-based Fernet container for hosts without a gpg binary.

Layout: ``MAGIC | salt (16 bytes) | Fernet token``. The key is derived from
the passphrase with PBKDF2-HMAC-SHA256.
"""

from __future__ import annotations

import base64
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import CipherError

MAGIC = b"PVF1"
SALT_LEN = 16
ITERATIONS = 200_000


def _derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class FernetCipher:
    kind = "fernet"

    def __init__(self, *, iterations: int = ITERATIONS):
        self.iterations = iterations

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        salt = os.urandom(SALT_LEN)
        token = Fernet(_derive_key(passphrase, salt, self.iterations)).encrypt(plaintext)
        return MAGIC + salt + token

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        header = len(MAGIC) + SALT_LEN
        if len(ciphertext) <= header or not ciphertext.startswith(MAGIC):
            raise CipherError("not a fernet asset container (bad header)")
        salt = ciphertext[len(MAGIC):header]
        token = ciphertext[header:]
        try:
            return Fernet(_derive_key(passphrase, salt, self.iterations)).decrypt(token)
        except InvalidToken as e:
            raise CipherError("bad passphrase or corrupt input (invalid fernet token)") from e

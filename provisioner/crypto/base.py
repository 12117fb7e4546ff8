from __future__ import annotations

from typing import Callable, Protocol

# Narrow signature consumed by the provisioner: (ciphertext, passphrase) -> plaintext.
DecryptFn = Callable[[bytes, str], bytes]


class Cipher(Protocol):
    kind: str

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        raise NotImplementedError

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        raise NotImplementedError

"""OpenPGP symmetric encryption through the ``gpg`` binary.

Files produced by ``gpg --symmetric`` (the format checked into asset trees)
are decrypted here. The passphrase always travels on stdin through
``--passphrase-fd 0`` and never appears on the command line.
"""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from ..errors import CipherError


class GpgCipher:
    kind = "gpg"

    def __init__(
        self,
        *,
        binary: str = "gpg",
        homedir: Optional[Path] = None,
        timeout_seconds: Optional[float] = 120.0,
    ):
        self.binary = binary
        self.homedir = Path(homedir) if homedir is not None else None
        self.timeout_seconds = timeout_seconds

    def _base_args(self) -> List[str]:
        args = [
            self.binary,
            "--batch",
            "--yes",
            "--quiet",
            "--no-symkey-cache",
            "--pinentry-mode",
            "loopback",
            "--passphrase-fd",
            "0",
        ]
        if self.homedir is not None:
            args += ["--homedir", str(self.homedir)]
        return args

    def _run(self, args: List[str], passphrase: str, action: str) -> bytes:
        # gpg reads --passphrase-fd line by line; the trailing newline avoids
        # version-specific edge cases.
        try:
            proc = subprocess.run(
                args,
                input=(passphrase + "\n").encode("utf-8"),
                capture_output=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as e:
            raise CipherError(f"gpg binary not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise CipherError(f"gpg {action} timed out after {self.timeout_seconds}s") from e

        if proc.returncode != 0:
            stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
            if "Bad session key" in stderr or "decryption failed" in stderr:
                raise CipherError(f"bad passphrase or corrupt input (gpg: {stderr})")
            raise CipherError(f"gpg {action} exited with {proc.returncode}: {stderr}")
        return proc.stdout or b""

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        # stdin carries the passphrase, so the ciphertext goes through a private temp file.
        with tempfile.TemporaryDirectory(prefix="provisioner-gpg-") as td:
            src = Path(td) / "asset.gpg"
            src.write_bytes(ciphertext)
            return self._run(self._base_args() + ["--decrypt", str(src)], passphrase, "decrypt")

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="provisioner-gpg-") as td:
            src = Path(td) / "asset"
            src.write_bytes(plaintext)
            args = self._base_args() + [
                "--symmetric",
                "--cipher-algo",
                "AES256",
                "--output",
                "-",
                str(src),
            ]
            return self._run(args, passphrase, "encrypt")

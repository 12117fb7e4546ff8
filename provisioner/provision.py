"""Asset provisioning: decrypt every encrypted asset under a root directory.

Contract:
- The passphrase is an explicit argument. This module never reads it from
  the environment, never logs it, and keeps no reference after returning.
- Assets are processed sequentially in discovery order and the first failure
  stops the run. Later assets are never attempted.
- Plaintext is written atomically next to the encrypted file. A failed
  decryption leaves no file at the destination.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .crypto.base import DecryptFn
from .discovery import DEFAULT_SUFFIX, discover_assets, plaintext_path_for
from .errors import (
    CipherError,
    DecryptionFailed,
    PassphraseMissing,
    ProvisionCancelled,
    RootNotFound,
    WriteFailed,
)
from .utils.fs import atomic_write_bytes, relative_posix
from .utils.hashing import sha256_bytes, short_hash


@dataclass(frozen=True)
class ProvisionedAsset:
    encrypted_path: Path
    plaintext_path: Path
    sha256: str
    size_bytes: int


@dataclass
class ProvisionReport:
    """Ordered record of the assets decrypted by one provisioning run."""

    root: Path
    assets: List[ProvisionedAsset] = field(default_factory=list)

    def pairs(self) -> List[Tuple[Path, Path]]:
        return [(a.encrypted_path, a.plaintext_path) for a in self.assets]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "count": len(self.assets),
            "assets": [
                {
                    "encrypted": relative_posix(a.encrypted_path, self.root),
                    "plaintext": relative_posix(a.plaintext_path, self.root),
                    "sha256": a.sha256,
                    "bytes": a.size_bytes,
                }
                for a in self.assets
            ],
        }


def check_root(root: Path) -> Path:
    root = Path(root)
    if not root.exists():
        raise RootNotFound(root, "does not exist")
    if not root.is_dir():
        raise RootNotFound(root, "is not a directory")
    if not os.access(root, os.R_OK | os.X_OK):
        raise RootNotFound(root, "is not readable")
    return root


def provision_asset(src: Path, passphrase: str, decrypt: DecryptFn, suffix: str = DEFAULT_SUFFIX) -> ProvisionedAsset:
    """Decrypt one asset to its sibling plaintext path."""
    dst = plaintext_path_for(src, suffix)
    try:
        ciphertext = src.read_bytes()
    except OSError as e:
        raise DecryptionFailed(src, e) from e

    try:
        plaintext = decrypt(ciphertext, passphrase)
    except Exception as e:
        raise DecryptionFailed(src, e, digest=short_hash(sha256_bytes(ciphertext))) from e
    if not isinstance(plaintext, (bytes, bytearray)):
        cause = CipherError(f"decrypt returned {type(plaintext).__name__}, expected bytes")
        raise DecryptionFailed(src, cause, digest=short_hash(sha256_bytes(ciphertext)))
    plaintext = bytes(plaintext)

    try:
        atomic_write_bytes(dst, plaintext)
    except OSError as e:
        raise WriteFailed(dst, e) from e

    return ProvisionedAsset(
        encrypted_path=src,
        plaintext_path=dst,
        sha256=sha256_bytes(plaintext),
        size_bytes=len(plaintext),
    )


def provision(
    root_directory: Path,
    passphrase: str,
    *,
    decrypt: DecryptFn,
    suffix: str = DEFAULT_SUFFIX,
    cancel: Optional[threading.Event] = None,
    on_asset: Optional[Callable[[ProvisionedAsset], None]] = None,
) -> ProvisionReport:
    """Decrypt every encrypted asset under ``root_directory``.

    Args:
        root_directory: directory scanned recursively for ``*<suffix>`` files.
        passphrase: shared secret used for every asset. Must be non-empty.
        decrypt: ``(ciphertext, passphrase) -> plaintext`` primitive.
        suffix: reserved suffix marking encrypted assets.
        cancel: checked before each asset. When set, the run stops with
            ProvisionCancelled carrying the partial report.
        on_asset: called after each asset is written.

    Returns:
        ProvisionReport listing the processed assets in order.

    Raises:
        PassphraseMissing, RootNotFound, DecryptionFailed, WriteFailed,
        ProvisionCancelled.
    """
    if not passphrase:
        raise PassphraseMissing("passphrase is empty; refusing to decrypt")
    root = check_root(Path(root_directory))

    report = ProvisionReport(root=root)
    for src in discover_assets(root, suffix):
        if cancel is not None and cancel.is_set():
            raise ProvisionCancelled(report)
        asset = provision_asset(src, passphrase, decrypt, suffix)
        report.assets.append(asset)
        if on_asset is not None:
            on_asset(asset)
    return report

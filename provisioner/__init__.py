"""Encrypted asset provisioning for CI.

Decrypts every ``*.gpg`` asset under a configured root with a shared
passphrase, then hands over to the external build and test stages.
"""

from __future__ import annotations

from .errors import (  # noqa: F401
    DecryptionFailed,
    PassphraseMissing,
    ProvisionCancelled,
    ProvisionError,
    RootNotFound,
    WriteFailed,
)
from .provision import ProvisionedAsset, ProvisionReport, provision  # noqa: F401

__all__ = [
    "DecryptionFailed",
    "PassphraseMissing",
    "ProvisionCancelled",
    "ProvisionError",
    "ProvisionReport",
    "ProvisionedAsset",
    "RootNotFound",
    "WriteFailed",
    "provision",
    "__version__",
]
__version__ = "0.1.0"

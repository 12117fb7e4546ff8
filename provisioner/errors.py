from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .provision import ProvisionReport


class ValidationError(Exception):
    """Raised when a config file or CLI input fails validation."""


class CipherError(Exception):
    """Raised by a decryption primitive that rejects its input."""


class ProvisionError(Exception):
    """Base class for provisioning failures. Always fatal to the run."""

    kind = "provision_error"


class PassphraseMissing(ProvisionError):
    """Raised when the passphrase is absent or empty."""

    kind = "passphrase_missing"


class RootNotFound(ProvisionError):
    """Raised when the asset root does not exist or cannot be read."""

    kind = "root_not_found"

    def __init__(self, root: Path, reason: str = "does not exist"):
        self.root = Path(root)
        self.reason = reason
        super().__init__(f"asset root {reason}: {self.root}")


class DecryptionFailed(ProvisionError):
    """Raised when an encrypted asset cannot be decrypted."""

    kind = "decryption_failed"

    def __init__(self, path: Path, cause: BaseException, digest: Optional[str] = None):
        self.path = Path(path)
        self.cause = cause
        self.digest = digest
        tag = f" (sha256[:16]={digest})" if digest else ""
        super().__init__(f"failed to decrypt {self.path}{tag}: {cause}")


class WriteFailed(ProvisionError):
    """Raised when a plaintext asset cannot be written."""

    kind = "write_failed"

    def __init__(self, path: Path, cause: BaseException):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"failed to write {self.path}: {cause}")


class ProvisionCancelled(ProvisionError):
    """Raised when a run is cancelled between two assets."""

    kind = "cancelled"

    def __init__(self, report: "ProvisionReport"):
        self.report = report
        super().__init__(f"provisioning cancelled after {len(report.assets)} asset(s)")


class StageFailed(Exception):
    """Raised when an external build/test stage fails."""

    def __init__(self, name: str, reason: str, returncode: Optional[int] = None):
        self.name = name
        self.reason = reason
        self.returncode = returncode
        super().__init__(f"stage {name!r} failed: {reason}")

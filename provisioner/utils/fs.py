from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes atomically so readers never observe a partial file.

    The temporary file is created next to the destination so the final
    rename stays on one filesystem. An existing destination is replaced.
    """
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def relative_posix(path: Path, root: Path) -> str:
    """Root-relative path with forward slashes, identical on every OS."""
    return path.relative_to(root).as_posix()

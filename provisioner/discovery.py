from __future__ import annotations

from pathlib import Path
from typing import List

from .utils.fs import relative_posix

DEFAULT_SUFFIX = ".gpg"


def is_encrypted_asset(path: Path, suffix: str = DEFAULT_SUFFIX) -> bool:
    # A file named exactly like the suffix has no plaintext name to map to.
    return path.name.endswith(suffix) and len(path.name) > len(suffix) and path.is_file()


def plaintext_path_for(path: Path, suffix: str = DEFAULT_SUFFIX) -> Path:
    if not path.name.endswith(suffix) or len(path.name) <= len(suffix):
        raise ValueError(f"not an encrypted asset name (suffix {suffix!r}): {path}")
    return path.with_name(path.name[: -len(suffix)])


def discover_assets(root: Path, suffix: str = DEFAULT_SUFFIX) -> List[Path]:
    """Return every encrypted asset under root, recursively.

    Order is lexicographic on the root-relative POSIX path, so Windows and
    Linux runs see the same sequence.
    """
    if not suffix:
        raise ValueError("asset suffix must be non-empty")
    root = Path(root)
    found = [p for p in root.rglob(f"*{suffix}") if is_encrypted_asset(p, suffix)]
    return sorted(found, key=lambda p: relative_posix(p, root))

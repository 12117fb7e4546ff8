"""External build/test stages.

Stages are opaque commands. This module only prepares their environment,
runs them, and turns any failure into StageFailed.
"""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .errors import StageFailed

STAGE_ORDER: Tuple[str, ...] = ("build", "test")


@dataclass(frozen=True)
class StageSpec:
    name: str
    command: List[str]
    timeout_seconds: Optional[float] = None
    env: Dict[str, str] = field(default_factory=dict)
    # Directories stripped from PATH before the command runs (toolchain conflicts).
    path_remove: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StageResult:
    name: str
    returncode: int
    duration_seconds: float


def _norm_dir(p: str) -> str:
    return os.path.normcase(os.path.normpath(p.strip().strip('"')))


def strip_path_entries(path_value: str, remove: List[str], sep: str = os.pathsep) -> str:
    """Drop every PATH entry matching one of ``remove``.

    Matching ignores trailing separators and surrounding quotes, and ignores
    case on Windows only (os.path.normcase). Entries that are not present
    are a no-op.
    """
    if not remove:
        return path_value
    drop = {_norm_dir(r) for r in remove}
    # Empty entries mean the current directory on POSIX; keep them as they are.
    kept = [p for p in path_value.split(sep) if not p or _norm_dir(p) not in drop]
    return sep.join(kept)


def stage_environ(spec: StageSpec, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    env = dict(environ if environ is not None else os.environ)
    env.update(spec.env)
    if spec.path_remove:
        # Windows spells the key "Path"; update whichever spelling is present.
        keys = [k for k in env if k.upper() == "PATH"] or ["PATH"]
        for k in keys:
            env[k] = strip_path_entries(env.get(k, ""), spec.path_remove)
    return env


def run_stage(
    spec: StageSpec,
    cwd: Path,
    environ: Optional[Mapping[str, str]] = None,
    stdout: Optional[int] = None,
) -> StageResult:
    """Run one stage to completion; output streams to the parent.

    ``stdout`` may name a file descriptor (e.g. 2) to divert the child's stdout.
    """
    env = stage_environ(spec, environ)
    started = time.monotonic()
    try:
        proc = subprocess.run(spec.command, cwd=str(cwd), env=env, timeout=spec.timeout_seconds, stdout=stdout)
    except FileNotFoundError as e:
        raise StageFailed(spec.name, f"executable not found: {spec.command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise StageFailed(spec.name, f"timed out after {spec.timeout_seconds}s") from e
    except OSError as e:
        raise StageFailed(spec.name, f"could not start {spec.command[0]}: {e}") from e

    result = StageResult(name=spec.name, returncode=proc.returncode, duration_seconds=time.monotonic() - started)
    if proc.returncode != 0:
        raise StageFailed(spec.name, f"exited with status {proc.returncode}", returncode=proc.returncode)
    return result


StageRunner = Callable[[StageSpec, Path, Optional[Mapping[str, str]]], StageResult]

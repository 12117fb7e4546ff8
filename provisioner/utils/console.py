"""Tagged console lines for CI logs.

Format: ``[TAG][LEVEL] message``. Callers must never pass secret values.
When a command prints a machine-readable document on stdout, every tagged
line goes to stderr instead (see ``route_to_stderr``).
"""

from __future__ import annotations

import sys

_stderr_only = False


def route_to_stderr(enabled: bool = True) -> None:
    global _stderr_only
    _stderr_only = enabled


def _emit(tag: str, level: str, msg: str, stream=None) -> None:
    if stream is None:
        stream = sys.stderr if _stderr_only else sys.stdout
    print(f"[{tag}][{level}] {msg}", file=stream, flush=True)


def ok(tag: str, msg: str) -> None:
    _emit(tag, "OK", msg)


def info(tag: str, msg: str) -> None:
    _emit(tag, "INFO", msg)


def warn(tag: str, msg: str) -> None:
    _emit(tag, "WARN", msg)


def fail(tag: str, msg: str) -> None:
    _emit(tag, "FAIL", msg, stream=sys.stderr)

from __future__ import annotations

import base64
import binascii
import os
from typing import Mapping, Optional

from .errors import PassphraseMissing

DEFAULT_PASSPHRASE_ENV = "LARGE_SECRET_PASSPHRASE"


def passphrase_from_env(var_name: str = DEFAULT_PASSPHRASE_ENV, environ: Optional[Mapping[str, str]] = None) -> str:
    """Read the asset passphrase from the environment.

    Accepts either ``<var_name>`` (raw) or ``<var_name>_B64`` (base64). The
    base64 form is useful when operators accidentally introduce whitespace or
    newlines when pasting the secret.

    Raises:
        PassphraseMissing: when neither variable holds a non-empty value, or
        the base64 value cannot be decoded. The message never contains the
        value itself.
    """
    env = environ if environ is not None else os.environ

    b64_name = f"{var_name}_B64"
    passphrase_b64 = (env.get(b64_name) or "").strip()
    if passphrase_b64:
        try:
            passphrase = base64.b64decode(passphrase_b64, validate=True).decode("utf-8", errors="strict")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise PassphraseMissing(f"{b64_name} is set but could not be decoded: {e.__class__.__name__}") from e
    else:
        # Keep intentional leading/trailing spaces; only drop pasted line endings.
        passphrase = (env.get(var_name) or "").rstrip("\r\n")

    if not passphrase:
        raise PassphraseMissing(f"passphrase environment variable {var_name} is missing or empty")
    return passphrase

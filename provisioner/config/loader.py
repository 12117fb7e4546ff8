from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from ..crypto import CIPHER_KINDS
from ..errors import ValidationError
from ..secrets import DEFAULT_PASSPHRASE_ENV
from ..stages import STAGE_ORDER, StageSpec
from ..utils.yamlio import read_yaml


DEFAULT_CONFIG_REL_PATH = Path("config/pipeline.yml")
CONFIG_ENV_VAR = "PROVISIONER_CONFIG"
LLVM_BIN_WINDOWS = r"C:\Program Files\LLVM\bin"

# Used only when no config file is named and the default file is absent.
DEFAULT_CONFIG: Dict[str, Any] = {
    "assets": {
        "root": "collision_meshes",
        "suffix": ".gpg",
        "cipher": "gpg",
        "gpg_binary": "gpg",
        "decrypt_timeout_seconds": 120,
    },
    "secret": {"env_var": DEFAULT_PASSPHRASE_ENV},
    "stages": {
        "build": {
            "command": ["cargo", "build", "--verbose"],
            "env": {"CARGO_TERM_COLOR": "always"},
            "path_remove": [LLVM_BIN_WINDOWS],
        },
        "test": {
            "command": ["cargo", "test", "--verbose"],
            "env": {"CARGO_TERM_COLOR": "always"},
            "path_remove": [LLVM_BIN_WINDOWS],
        },
    },
}


@dataclass(frozen=True)
class AssetSettings:
    root: Path
    suffix: str = ".gpg"
    cipher: str = "gpg"
    gpg_binary: str = "gpg"
    decrypt_timeout_seconds: Optional[float] = 120.0

    def cipher_settings(self) -> Dict[str, Any]:
        if self.cipher == "gpg":
            return {"binary": self.gpg_binary, "timeout_seconds": self.decrypt_timeout_seconds}
        return {}


@dataclass(frozen=True)
class PipelineConfig:
    assets: AssetSettings
    secret_env_var: str = DEFAULT_PASSPHRASE_ENV
    stages: List[StageSpec] = field(default_factory=list)
    source_path: str = ""

    def stage(self, name: str) -> Optional[StageSpec]:
        for s in self.stages:
            if s.name == name:
                return s
        return None


def _stage_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "required": ["command"],
        "properties": {
            "command": {"type": "array", "minItems": 1, "items": {"type": "string", "minLength": 1}},
            "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
            "env": {"type": "object", "additionalProperties": {"type": "string"}},
            "path_remove": {"type": "array", "items": {"type": "string", "minLength": 1}},
        },
        "additionalProperties": False,
    }


def _config_schema() -> Dict[str, Any]:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": {
            "assets": {
                "type": "object",
                "properties": {
                    "root": {"type": "string", "minLength": 1},
                    "suffix": {"type": "string", "minLength": 1},
                    "cipher": {"type": "string", "enum": list(CIPHER_KINDS)},
                    "gpg_binary": {"type": "string", "minLength": 1},
                    "decrypt_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
                },
                "additionalProperties": False,
            },
            "secret": {
                "type": "object",
                "properties": {"env_var": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"}},
                "additionalProperties": False,
            },
            "stages": {
                "type": "object",
                "properties": {name: _stage_schema() for name in STAGE_ORDER},
                "additionalProperties": False,
            },
        },
        "additionalProperties": False,
    }


def resolve_config_path(repo_root: Path, cli_path: Optional[str] = None) -> Tuple[Path, bool]:
    """Resolve the pipeline config path.

    Precedence:
      1) CLI flag --config
      2) PROVISIONER_CONFIG
      3) <repo_root>/config/pipeline.yml

    Returns the path and whether it was named explicitly (1 or 2).
    """
    if cli_path and str(cli_path).strip():
        return Path(str(cli_path).strip()).expanduser().resolve(), True

    env_path = str(os.environ.get(CONFIG_ENV_VAR, "") or "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve(), True

    return (Path(repo_root) / DEFAULT_CONFIG_REL_PATH).resolve(), False


def _merge(data: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section in ("assets", "secret"):
        merged[section].update(data.get(section) or {})
    # A stages block replaces the defaults wholesale so a stage can be dropped.
    if "stages" in data:
        merged["stages"] = data.get("stages") or {}
    return merged


def parse_pipeline_config(data: Dict[str, Any], repo_root: Path, source: str = "<defaults>") -> PipelineConfig:
    """Validate a raw config mapping and build a PipelineConfig."""
    try:
        jsonschema.validate(instance=data, schema=_config_schema())
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ValidationError(f"pipeline config invalid at {where}: {e.message} ({source})") from e

    merged = _merge(data)
    a = merged["assets"]
    root = Path(a["root"])
    if not root.is_absolute():
        root = Path(repo_root) / root

    timeout = a.get("decrypt_timeout_seconds")
    assets = AssetSettings(
        root=root,
        suffix=str(a["suffix"]),
        cipher=str(a["cipher"]),
        gpg_binary=str(a["gpg_binary"]),
        decrypt_timeout_seconds=float(timeout) if timeout is not None else None,
    )

    stages: List[StageSpec] = []
    stages_raw = merged["stages"]
    for name in STAGE_ORDER:
        s = stages_raw.get(name)
        if s is None:
            continue
        t = s.get("timeout_seconds")
        stages.append(
            StageSpec(
                name=name,
                command=[str(x) for x in s["command"]],
                timeout_seconds=float(t) if t is not None else None,
                env={str(k): str(v) for k, v in (s.get("env") or {}).items()},
                path_remove=[str(x) for x in (s.get("path_remove") or [])],
            )
        )

    return PipelineConfig(
        assets=assets,
        secret_env_var=str(merged["secret"]["env_var"]),
        stages=stages,
        source_path=source,
    )


def load_pipeline_config(repo_root: Path, cli_path: Optional[str] = None) -> PipelineConfig:
    """Load and validate the pipeline config.

    Raises:
        ValidationError: if an explicitly named file is missing, or any file
        fails to parse or validate. Unknown keys fail fast.
    """
    path, explicit = resolve_config_path(repo_root, cli_path)
    if not path.exists():
        if explicit:
            raise ValidationError(f"pipeline config not found: {path}")
        return parse_pipeline_config({}, repo_root)

    try:
        data = read_yaml(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"pipeline config unreadable: {path}: {e}") from e
    return parse_pipeline_config(data, repo_root, source=str(path))

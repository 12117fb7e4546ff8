"""Pipeline driver: provision -> build -> test.

Each step runs only when every earlier step succeeded. The first failure
ends the run; remaining steps are reported as skipped.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import PipelineConfig
from .crypto import get_cipher
from .crypto.base import DecryptFn
from .errors import ProvisionError, StageFailed
from .provision import ProvisionedAsset, ProvisionReport, provision
from .secrets import passphrase_from_env
from .stages import StageRunner, run_stage
from .utils import console
from .utils.fs import relative_posix

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class StepOutcome:
    name: str
    status: str
    detail: str = ""


@dataclass
class PipelineResult:
    steps: List[StepOutcome] = field(default_factory=list)
    report: Optional[ProvisionReport] = None

    @property
    def ok(self) -> bool:
        return all(s.status != STATUS_FAILED for s in self.steps)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "steps": [{"name": s.name, "status": s.status, "detail": s.detail} for s in self.steps],
            "provision": self.report.to_dict() if self.report is not None else None,
        }


def run_provision_step(
    config: PipelineConfig,
    *,
    environ: Optional[Mapping[str, str]] = None,
    decrypt: Optional[DecryptFn] = None,
    cancel: Optional[threading.Event] = None,
) -> ProvisionReport:
    """Read the passphrase, then decrypt every asset under the configured root."""
    assets = config.assets
    passphrase = passphrase_from_env(config.secret_env_var, environ)
    if decrypt is None:
        decrypt = get_cipher(assets.cipher, **assets.cipher_settings()).decrypt

    def _log(asset: ProvisionedAsset) -> None:
        console.ok("PROVISION", f"{relative_posix(asset.encrypted_path, assets.root)} -> {asset.plaintext_path.name}")

    console.info("PROVISION", f"root={assets.root} suffix={assets.suffix} cipher={assets.cipher}")
    report = provision(assets.root, passphrase, decrypt=decrypt, suffix=assets.suffix, cancel=cancel, on_asset=_log)
    if not report.assets:
        console.warn("PROVISION", f"no encrypted assets found under {assets.root}")
    return report


def run_pipeline(
    repo_root: Path,
    config: PipelineConfig,
    *,
    environ: Optional[Mapping[str, str]] = None,
    decrypt: Optional[DecryptFn] = None,
    runner: Optional[StageRunner] = None,
    skip_stages: Iterable[str] = (),
    cancel: Optional[threading.Event] = None,
) -> PipelineResult:
    env = environ if environ is not None else os.environ
    run = runner or run_stage
    skip = set(skip_stages)
    result = PipelineResult()

    try:
        result.report = run_provision_step(config, environ=env, decrypt=decrypt, cancel=cancel)
    except ProvisionError as e:
        console.fail("PROVISION", f"{e.kind}: {e}")
        result.steps.append(StepOutcome("provision", STATUS_FAILED, f"{e.kind}: {e}"))
        for spec in config.stages:
            result.steps.append(StepOutcome(spec.name, STATUS_SKIPPED, "provisioning failed"))
        return result
    result.steps.append(StepOutcome("provision", STATUS_OK, f"{len(result.report.assets)} asset(s)"))

    failed = False
    for spec in config.stages:
        if failed:
            result.steps.append(StepOutcome(spec.name, STATUS_SKIPPED, "earlier step failed"))
            continue
        if spec.name in skip:
            console.warn("PIPELINE", f"stage {spec.name} skipped on request")
            result.steps.append(StepOutcome(spec.name, STATUS_SKIPPED, "skipped on request"))
            continue
        console.info("PIPELINE", f"stage {spec.name}: {' '.join(spec.command)}")
        try:
            res = run(spec, Path(repo_root), env)
        except StageFailed as e:
            console.fail("PIPELINE", str(e))
            result.steps.append(StepOutcome(spec.name, STATUS_FAILED, e.reason))
            failed = True
            continue
        console.ok("PIPELINE", f"stage {spec.name} finished in {res.duration_seconds:.1f}s")
        result.steps.append(StepOutcome(spec.name, STATUS_OK, f"{res.duration_seconds:.1f}s"))

    return result

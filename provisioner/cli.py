from __future__ import annotations

import argparse
import dataclasses
import json
from pathlib import Path
from typing import List, Optional

from .config import PipelineConfig, load_pipeline_config
from .crypto import CIPHER_KINDS, get_cipher
from .discovery import discover_assets
from .errors import CipherError, ProvisionError, ValidationError
from .pipeline import run_pipeline, run_provision_step
from .provision import check_root
from .secrets import passphrase_from_env
from .stages import STAGE_ORDER, run_stage
from .utils import console
from .utils.fs import atomic_write_bytes, relative_posix

EXIT_FAILED = 1
EXIT_USAGE = 2


def _repo_root(args: argparse.Namespace) -> Path:
    return Path(args.repo_root).resolve()


def _load_config(args: argparse.Namespace) -> PipelineConfig:
    repo_root = _repo_root(args)
    cfg = load_pipeline_config(repo_root, cli_path=args.config)

    assets = cfg.assets
    if getattr(args, "root", None):
        root = Path(args.root)
        assets = dataclasses.replace(assets, root=root if root.is_absolute() else repo_root / root)
    if getattr(args, "suffix", None):
        assets = dataclasses.replace(assets, suffix=args.suffix)
    if getattr(args, "cipher", None):
        assets = dataclasses.replace(assets, cipher=args.cipher)
    cfg = dataclasses.replace(cfg, assets=assets)

    if getattr(args, "passphrase_env", None):
        cfg = dataclasses.replace(cfg, secret_env_var=args.passphrase_env)
    return cfg


def cmd_provision(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    try:
        report = run_provision_step(cfg)
    except ProvisionError as e:
        console.fail("PROVISION", f"{e.kind}: {e}")
        return EXIT_FAILED
    console.ok("PROVISION", f"{len(report.assets)} asset(s) decrypted")
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    runner = None
    if args.json:
        # Stage output joins the log on stderr; stdout carries only the JSON document.
        def runner(spec, cwd, environ):
            return run_stage(spec, cwd, environ, stdout=2)

    result = run_pipeline(_repo_root(args), cfg, skip_stages=args.skip or (), runner=runner)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    if result.ok:
        console.ok("PIPELINE", "all steps succeeded")
    else:
        console.fail("PIPELINE", "run failed")
    return result.exit_code


def cmd_list(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    try:
        root = check_root(cfg.assets.root)
    except ProvisionError as e:
        console.fail("PROVISION", f"{e.kind}: {e}")
        return EXIT_FAILED
    found = [relative_posix(p, root) for p in discover_assets(root, cfg.assets.suffix)]
    print(json.dumps(found, indent=2))
    return 0


def cmd_encrypt(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    try:
        passphrase = passphrase_from_env(cfg.secret_env_var)
    except ProvisionError as e:
        console.fail("ENCRYPT", str(e))
        return EXIT_FAILED
    cipher = get_cipher(cfg.assets.cipher, **cfg.assets.cipher_settings())

    for name in args.files:
        src = Path(name)
        if not src.is_file():
            console.fail("ENCRYPT", f"not a file: {src}")
            return EXIT_FAILED
        if src.name.endswith(cfg.assets.suffix):
            console.fail("ENCRYPT", f"already has suffix {cfg.assets.suffix}: {src}")
            return EXIT_FAILED
        dst = src.with_name(src.name + cfg.assets.suffix)
        try:
            atomic_write_bytes(dst, cipher.encrypt(src.read_bytes(), passphrase))
        except (CipherError, OSError) as e:
            console.fail("ENCRYPT", f"{src}: {e}")
            return EXIT_FAILED
        console.ok("ENCRYPT", f"{src} -> {dst.name}")
    return 0


def _add_common(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--repo-root", default=".", help="Repository root (default: current directory).")
    sp.add_argument("--config", default=None, help="Pipeline config YAML (overrides PROVISIONER_CONFIG).")
    sp.add_argument("--passphrase-env", default=None, help="Environment variable holding the passphrase.")


def _add_asset_overrides(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--root", default=None, help="Encrypted asset root, relative to the repo root.")
    sp.add_argument("--suffix", default=None, help="Reserved suffix of encrypted assets (default .gpg).")
    sp.add_argument("--cipher", default=None, choices=list(CIPHER_KINDS))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="provisioner")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("provision", help="Decrypt all encrypted assets")
    _add_common(sp)
    _add_asset_overrides(sp)
    sp.add_argument("--json", action="store_true", help="Print the provision report as JSON.")
    sp.set_defaults(func=cmd_provision)

    sp = sub.add_parser("run", help="Provision assets, then run build and test")
    _add_common(sp)
    _add_asset_overrides(sp)
    sp.add_argument("--skip", action="append", choices=list(STAGE_ORDER), help="Skip a stage (repeatable).")
    sp.add_argument("--json", action="store_true", help="Print the pipeline result as JSON.")
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("list", help="List encrypted assets without decrypting")
    _add_common(sp)
    _add_asset_overrides(sp)
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("encrypt", help="Encrypt files into <file><suffix> siblings")
    _add_common(sp)
    sp.add_argument("--suffix", default=None)
    sp.add_argument("--cipher", default=None, choices=list(CIPHER_KINDS))
    sp.add_argument("files", nargs="+")
    sp.set_defaults(func=cmd_encrypt)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console.route_to_stderr(bool(getattr(args, "json", False)))
    try:
        return int(args.func(args) or 0)
    except ValidationError as e:
        console.fail("CONFIG", str(e))
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())

"""Cargo/cross invocation for one build target.

Native targets use cargo; cross-compiled targets use cross, which is installed
on demand (cargo install cross) when it is not already on PATH.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from relay_release.build.matrix import BuildTarget

log = logging.getLogger(__name__)

# Secret env var supplied by the CI environment -> name the relay's build script reads.
DEFAULT_SECRET_ENV: dict[str, str] = {
    "SERVER_SSL_CA": "CARGO_SERVER_SSL_CA",
    "SERVER_SSL_CERT": "CARGO_SERVER_SSL_CERT",
    "SERVER_SSL_KEY": "CARGO_SERVER_SSL_KEY",
}


@dataclass(frozen=True)
class BuildOptions:
    binary_name: str = "tagoio-relay"
    locked: bool = True
    offline: bool = False
    release: bool = True
    secret_env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SECRET_ENV))

    @property
    def profile_dir(self) -> str:
        return "release" if self.release else "debug"


def cargo_program(target: BuildTarget) -> str:
    return "cross" if target.requires_cross_compile else "cargo"


def cargo_command(target: BuildTarget, options: BuildOptions, subcommand: str = "build") -> list[str]:
    """cargo|cross <subcommand> [--locked] [--offline] [--release] --target <triple>."""
    cmd = [cargo_program(target), subcommand]
    if options.locked:
        cmd.append("--locked")
    if options.offline:
        cmd.append("--offline")
    if options.release:
        cmd.append("--release")
    cmd += ["--target", target.compiler_triple]
    return cmd


def output_path(project_root: Path, target: BuildTarget, options: BuildOptions) -> Path:
    """Conventional compiler output: target/{triple}/{release|debug}/{binary_name}."""
    return project_root / "target" / target.compiler_triple / options.profile_dir / options.binary_name


def install_cross(cwd: Path) -> tuple[bool, str]:
    """Provision cross if missing. Returns (ok, detail)."""
    if shutil.which("cross"):
        log.debug("cross already on PATH")
        return True, ""
    try:
        r = subprocess.run(
            ["cargo", "install", "cross"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        return False, f"cargo install cross failed: {e}"
    if r.returncode != 0:
        return False, _tail(r.stderr) or f"cargo install cross exited {r.returncode}"
    return True, ""


def run_cargo(cmd: list[str], cwd: Path, env: dict[str, str]) -> tuple[bool, str]:
    """Run a cargo/cross command with env. Returns (ok, detail). env may hold secrets: never log it."""
    log.debug("Running %s in %s", " ".join(cmd), cwd)
    try:
        r = subprocess.run(cmd, cwd=str(cwd), env=env, capture_output=True, text=True)
    except OSError as e:
        return False, f"{cmd[0]} could not be started: {e}"
    if r.returncode != 0:
        return False, _tail(r.stderr) or f"{cmd[0]} exited {r.returncode}"
    return True, ""


def build_env(base: dict[str, str], secret_env: dict[str, str]) -> dict[str, str]:
    """Copy of base with each present secret also exported under its cargo-facing name."""
    env = dict(base)
    for source, exported in secret_env.items():
        value = base.get(source)
        if value is not None:
            env[exported] = value
    return env


def _tail(text: str | None, lines: int = 5) -> str:
    if not text:
        return ""
    return "\n".join(text.strip().splitlines()[-lines:])

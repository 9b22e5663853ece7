"""docker / buildx / manifest commands used by the publish orchestrator.

Each method raises DockerCommandFailed on a non-zero exit. Credentials are
passed on stdin only.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from relay_release.errors import ReleasePipelineError

log = logging.getLogger(__name__)

BUILDER_NAME = "relay-release"
BINFMT_IMAGE = "tonistiigi/binfmt"

_DIGEST = re.compile(r"sha256:[0-9a-f]{64}")


class DockerCommandFailed(ReleasePipelineError):
    def __init__(self, cmd: list[str], detail: str = "") -> None:
        self.cmd = cmd
        self.detail = detail
        msg = f"{' '.join(cmd[:3])} failed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class DockerCli:
    def __init__(self, cwd: Path | None = None, docker: str = "docker") -> None:
        self.cwd = cwd
        self.docker = docker

    def _run(self, args: list[str], input_text: str | None = None) -> str:
        cmd = [self.docker, *args]
        log.debug("Running %s", " ".join(cmd))
        try:
            r = subprocess.run(
                cmd,
                cwd=str(self.cwd) if self.cwd else None,
                input=input_text,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise DockerCommandFailed(cmd, str(e)) from e
        if r.returncode != 0:
            detail = (r.stderr or r.stdout or "").strip().splitlines()
            raise DockerCommandFailed(cmd, detail[-1] if detail else f"exit {r.returncode}")
        return r.stdout or ""

    def login(self, username: str, token: str, registry: str | None = None) -> None:
        args = ["login", "--username", username, "--password-stdin"]
        if registry:
            args.append(registry)
        self._run(args, input_text=token)

    def ensure_builder(self, setup_qemu: bool = False) -> None:
        """Select (or create) the buildx builder; optionally register QEMU emulators first."""
        if setup_qemu:
            self._run(["run", "--privileged", "--rm", BINFMT_IMAGE, "--install", "all"])
        try:
            self._run(["buildx", "inspect", BUILDER_NAME])
            self._run(["buildx", "use", BUILDER_NAME])
        except DockerCommandFailed:
            log.debug("buildx builder %s not found, creating it", BUILDER_NAME)
            self._run(["buildx", "create", "--name", BUILDER_NAME, "--use"])

    def build_layer(self, architecture: str, image_ref: str, dockerfile: Path, context: Path) -> None:
        """Build one platform image into the local image store (--load); nothing is pushed."""
        self._run(
            [
                "buildx",
                "build",
                "--platform",
                architecture,
                "--tag",
                image_ref,
                "--file",
                str(dockerfile),
                "--load",
                str(context),
            ]
        )

    def push_image(self, image_ref: str) -> None:
        self._run(["push", image_ref])

    def create_manifest(self, manifest_ref: str, image_refs: list[str]) -> None:
        # --amend replaces a stale local manifest list left by an earlier publish of this version.
        self._run(["manifest", "create", "--amend", manifest_ref, *image_refs])

    def annotate_manifest(
        self, manifest_ref: str, image_ref: str, os_name: str, arch: str, variant: str | None
    ) -> None:
        args = ["manifest", "annotate", "--os", os_name, "--arch", arch]
        if variant:
            args += ["--variant", variant]
        self._run([*args, manifest_ref, image_ref])

    def push_manifest(self, manifest_ref: str) -> str:
        """Push (and purge the local copy of) the manifest list. Returns its digest, or '' if not reported."""
        out = self._run(["manifest", "push", "--purge", manifest_ref])
        m = _DIGEST.search(out)
        return m.group(0) if m else ""

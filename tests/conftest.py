"""Pytest fixtures for relay_release tests."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from relay_release.artifacts.store import ArtifactStore
from relay_release.config import PipelineConfig, load_config
from relay_release.docker.backend import DockerCommandFailed

_REAL_RUN = subprocess.run


class FakeDocker:
    """Stands in for DockerCli: records calls and keeps a registry of pushed manifests."""

    def __init__(self, fail_architectures: set[str] | None = None) -> None:
        self.fail_architectures = set(fail_architectures or ())
        self.calls: list[tuple] = []
        self.local_images: dict[str, str] = {}
        self.pushed_images: set[str] = set()
        self.registry: dict[str, list[str]] = {}
        self.annotations: dict[str, dict[str, tuple]] = {}
        self._pending: dict[str, list[str]] = {}
        self.dockerfiles: dict[str, str] = {}

    def login(self, username: str, token: str, registry: str | None = None) -> None:
        self.calls.append(("login", username, registry))

    def ensure_builder(self, setup_qemu: bool = False) -> None:
        self.calls.append(("ensure_builder", setup_qemu))

    def build_layer(self, architecture: str, image_ref: str, dockerfile: Path, context: Path) -> None:
        self.calls.append(("build_layer", architecture, image_ref))
        self.dockerfiles[architecture] = dockerfile.read_text()
        if architecture in self.fail_architectures:
            raise DockerCommandFailed(["docker", "buildx", "build"], f"exec format error ({architecture})")
        self.local_images[image_ref] = architecture

    def push_image(self, image_ref: str) -> None:
        self.calls.append(("push_image", image_ref))
        self.pushed_images.add(image_ref)

    def create_manifest(self, manifest_ref: str, image_refs: list[str]) -> None:
        self.calls.append(("create_manifest", manifest_ref, tuple(image_refs)))
        self._pending[manifest_ref] = list(image_refs)

    def annotate_manifest(self, manifest_ref, image_ref, os_name, arch, variant) -> None:
        self.calls.append(("annotate_manifest", manifest_ref, image_ref))
        self.annotations.setdefault(manifest_ref, {})[image_ref] = (os_name, arch, variant)

    def push_manifest(self, manifest_ref: str) -> str:
        self.calls.append(("push_manifest", manifest_ref))
        self.registry[manifest_ref] = self._pending.pop(manifest_ref)
        return "sha256:" + "ab" * 32

    def commands(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def relay_project(tmp_path: Path) -> Path:
    """Minimal relay crate root (cargo is mocked, only the layout matters)."""
    root = tmp_path / "relay"
    root.mkdir()
    (root / "Cargo.toml").write_text('[package]\nname = "tagoio-relay"\nversion = "0.1.0"\n')
    return root


@pytest.fixture
def config(relay_project: Path) -> PipelineConfig:
    return load_config(relay_project, environ={})


@pytest.fixture
def store(config: PipelineConfig) -> ArtifactStore:
    return ArtifactStore(config.artifacts_path, config.binary_name, prefix=config.artifact_prefix)


def make_cargo(
    project_root: Path,
    binary_name: str = "tagoio-relay",
    fail_install_cross: bool = False,
    cargo_missing: bool = False,
    fail_compile: set[str] | None = None,
    fail_test: set[str] | None = None,
    empty_output: set[str] | None = None,
):
    """side_effect for subprocess.run emulating cargo/cross: build writes target/<triple>/release/<bin>.

    Commands other than cargo/cross go to the real subprocess.run.
    """
    fail_compile = fail_compile or set()
    fail_test = fail_test or set()
    empty_output = empty_output or set()
    calls: list[list[str]] = []

    def _run(cmd, **kwargs):
        if cmd[0] not in ("cargo", "cross"):
            return _REAL_RUN(cmd, **kwargs)
        calls.append(list(cmd))
        if cmd[0] == "cargo" and cargo_missing:
            raise FileNotFoundError(2, "No such file or directory", "cargo")
        if cmd[:3] == ["cargo", "install", "cross"]:
            if fail_install_cross:
                return subprocess.CompletedProcess(cmd, 101, "", "error: failed to compile `cross`")
            return subprocess.CompletedProcess(cmd, 0, "", "")
        triple = cmd[cmd.index("--target") + 1]
        if cmd[1] == "test":
            if triple in fail_test:
                return subprocess.CompletedProcess(cmd, 101, "", "test result: FAILED")
            return subprocess.CompletedProcess(cmd, 0, "", "")
        if triple in fail_compile:
            return subprocess.CompletedProcess(cmd, 101, "", "error[E0425]: cannot find value")
        profile = "release" if "--release" in cmd else "debug"
        out = project_root / "target" / triple / profile / binary_name
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(b"" if triple in empty_output else b"\x7fELF" + triple.encode())
        return subprocess.CompletedProcess(cmd, 0, "", "")

    _run.calls = calls
    return _run


@pytest.fixture
def cargo_factory():
    return make_cargo

"""Pipeline configuration: relay-release.yaml at the project root, plus env overrides.

Without a config file the defaults reproduce the relay's release workflow:
linux-x64 (native) and linux-arm64 (cross) published as linux/amd64 and
linux/arm64/v8 under tagoio/relay.

Example::

    binary_name: tagoio-relay
    repository: tagoio/relay
    build:
      locked: true
      matrix:
        - {platform: linux-x64, os: ubuntu-latest, target: x86_64-unknown-linux-gnu}
        - {platform: linux-arm64, os: ubuntu-latest, target: aarch64-unknown-linux-gnu, cross: true}
    publish:
      matrix:
        - {platform: linux-x64, architecture: linux/amd64}
        - {platform: linux-arm64, architecture: linux/arm64/v8}
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from relay_release.build.matrix import TargetMatrix
from relay_release.build.toolchain import DEFAULT_SECRET_ENV, BuildOptions
from relay_release.docker.dockerfile import DEFAULT_BASE_IMAGE
from relay_release.errors import ConfigError
from relay_release.helpers import load_yaml_file

CONFIG_FILENAME = "relay-release.yaml"
DEFAULT_BINARY_NAME = "tagoio-relay"
DEFAULT_REPOSITORY = "tagoio/relay"
DEFAULT_ARTIFACTS_DIR = ".relay-release/artifacts"


@dataclass
class PipelineConfig:
    project_root: Path
    matrix: TargetMatrix = field(default_factory=TargetMatrix)
    build: BuildOptions = field(default_factory=BuildOptions)
    repository: str = DEFAULT_REPOSITORY
    artifact_prefix: str = DEFAULT_BINARY_NAME
    artifacts_dir: Path | None = None
    base_image: str = DEFAULT_BASE_IMAGE
    dockerfile_template: Path | None = None
    tests_enabled: bool = True
    registry: str | None = None
    registry_username: str | None = None
    registry_token: str | None = field(default=None, repr=False)

    @property
    def binary_name(self) -> str:
        return self.build.binary_name

    @property
    def artifacts_path(self) -> Path:
        if self.artifacts_dir is None:
            return self.project_root / DEFAULT_ARTIFACTS_DIR
        return self.artifacts_dir


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        msg = f"'{key}' must be a mapping"
        raise ConfigError(msg)
    return value


def check_artifacts_dir(project_root: Path, artifacts_dir: Path) -> Path:
    """Reject an artifact store at the project root or above it; the store is cleared before every run."""
    root = Path(project_root).resolve()
    target = Path(artifacts_dir).resolve()
    if target == root or target in root.parents:
        msg = f"artifacts_dir {artifacts_dir} must be a directory inside {root}, not the project root or a parent of it"
        raise ConfigError(msg)
    return artifacts_dir


def _resolve(project_root: Path, value: Any) -> Path | None:
    if not value:
        return None
    p = Path(str(value))
    return p if p.is_absolute() else project_root / p


def load_config(
    project_root: Path,
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> PipelineConfig:
    """Load config_path (default: project_root/relay-release.yaml if present) and apply env overrides."""
    env = os.environ if environ is None else environ
    root = Path(project_root).resolve()
    path = config_path or root / CONFIG_FILENAME

    data: dict[str, Any] = {}
    if config_path is not None and not path.is_file():
        msg = f"Config file not found: {path}"
        raise ConfigError(msg)
    if path.is_file():
        try:
            data = load_yaml_file(path)
        except (OSError, ValueError) as e:
            msg = f"Could not load {path}: {e}"
            raise ConfigError(msg) from e

    build = _section(data, "build")
    publish = _section(data, "publish")
    tests = _section(data, "tests")

    if "matrix" in build or "matrix" in publish:
        matrix = TargetMatrix.from_config(build.get("matrix") or [], publish.get("matrix") or [])
    else:
        matrix = TargetMatrix()

    secrets = data.get("secrets")
    if secrets is not None and not isinstance(secrets, dict):
        msg = "'secrets' must map CI variable names to exported names"
        raise ConfigError(msg)

    binary_name = str(data.get("binary_name", DEFAULT_BINARY_NAME))
    options = BuildOptions(
        binary_name=binary_name,
        locked=bool(build.get("locked", True)),
        offline=bool(build.get("offline", False)),
        release=bool(build.get("release", True)),
        secret_env=dict(secrets) if secrets is not None else dict(DEFAULT_SECRET_ENV),
    )

    repository = env.get("RELAY_RELEASE_REPOSITORY") or str(data.get("repository", DEFAULT_REPOSITORY))
    if not repository:
        msg = "Image repository is empty"
        raise ConfigError(msg)

    artifacts_dir = _resolve(root, data.get("artifacts_dir"))
    if artifacts_dir is not None:
        check_artifacts_dir(root, artifacts_dir)

    return PipelineConfig(
        project_root=root,
        matrix=matrix,
        build=options,
        repository=repository,
        artifact_prefix=str(data.get("artifact_prefix", binary_name)),
        artifacts_dir=artifacts_dir,
        base_image=str(publish.get("base_image", DEFAULT_BASE_IMAGE)),
        dockerfile_template=_resolve(root, publish.get("dockerfile_template")),
        tests_enabled=bool(tests.get("enabled", True)),
        registry=publish.get("registry") or None,
        registry_username=env.get("DOCKERHUB_USERNAME") or None,
        registry_token=env.get("DOCKERHUB_TOKEN") or None,
    )

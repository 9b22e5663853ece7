"""Assemble and push the multi-architecture relay image.

Per publish target: fetch the artifact, validate it, build a local image layer.
Only when every declared architecture produced a layer are the images pushed
and the manifest list {repository}:{version} created and pushed. A manifest
never references a subset of the declared architectures.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from relay_release.artifacts.store import ArtifactStore, BuildArtifact
from relay_release.build.matrix import PublishTarget
from relay_release.docker.backend import DockerCli, DockerCommandFailed
from relay_release.docker.dockerfile import DEFAULT_BASE_IMAGE, render_dockerfile
from relay_release.errors import (
    ArtifactInvalid,
    LayerBuildFailed,
    PublishAborted,
    RegistryError,
    ReleasePipelineError,
)
from relay_release.helpers import arch_slug, sha256_file, split_architecture

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseImage:
    repository: str
    version: str
    layers: dict[str, str] = field(default_factory=dict)
    manifest_digest: str = ""
    pushed: bool = False

    @property
    def manifest_ref(self) -> str:
        return f"{self.repository}:{self.version}"


class PublishOrchestrator:
    def __init__(
        self,
        store: ArtifactStore,
        repository: str,
        backend: DockerCli | None = None,
        base_image: str = DEFAULT_BASE_IMAGE,
        dockerfile_template: str | None = None,
        push: bool = True,
    ) -> None:
        self.store = store
        self.repository = repository
        self.backend = backend or DockerCli()
        self.base_image = base_image
        self.dockerfile_template = dockerfile_template
        self.push = push

    def image_ref(self, version: str, target: PublishTarget) -> str:
        return f"{self.repository}:{version}-{arch_slug(target.architecture_tag)}"

    def fetch(self, target: PublishTarget) -> BuildArtifact:
        """Raises ArtifactMissing if the build phase stored nothing for this platform."""
        return self.store.get(target.platform_id)

    def validate(self, target: PublishTarget, artifact: BuildArtifact) -> None:
        path = artifact.path
        if not path.exists():
            raise ArtifactInvalid(target.platform_id, f"{path} does not exist")
        if not path.is_file():
            raise ArtifactInvalid(target.platform_id, f"{path} is not a regular file")
        if path.stat().st_size == 0:
            raise ArtifactInvalid(target.platform_id, f"{path} is empty")
        if artifact.sha256 and sha256_file(path) != artifact.sha256:
            raise ArtifactInvalid(target.platform_id, "sha256 does not match the stored hash")

    def build_layer(self, target: PublishTarget, artifact: BuildArtifact, version: str) -> str:
        """Build the image for one architecture in a scratch context. Returns the image ref."""
        ref = self.image_ref(version, target)
        binary_name = artifact.path.name
        with tempfile.TemporaryDirectory(prefix="relay-layer-") as tmp:
            context = Path(tmp)
            shutil.copy2(artifact.path, context / binary_name)
            (context / binary_name).chmod(0o755)
            dockerfile = context / "Dockerfile"
            dockerfile.write_text(
                render_dockerfile(
                    binary_name,
                    version,
                    target.architecture_tag,
                    base_image=self.base_image,
                    template=self.dockerfile_template,
                )
            )
            try:
                self.backend.build_layer(target.architecture_tag, ref, dockerfile, context)
            except DockerCommandFailed as e:
                raise LayerBuildFailed(target.platform_id, target.architecture_tag, e.detail) from e
        return ref

    def publish(self, version: str, targets: Iterable[PublishTarget]) -> ReleaseImage:
        """Build every layer, then push all of them and the manifest list. Raises PublishAborted or RegistryError."""
        targets = list(targets)
        layers: dict[str, str] = {}
        failures: dict[str, ReleasePipelineError] = {}

        print(f"🐳 Building image layers for {self.repository}:{version}...")
        for target in targets:
            arch = target.architecture_tag
            try:
                artifact = self.fetch(target)
                self.validate(target, artifact)
                layers[arch] = self.build_layer(target, artifact, version)
            except ReleasePipelineError as e:
                failures[arch] = e
                print(f"❌ {arch} ({target.platform_id}): {e}", file=sys.stderr)
                continue
            print(f"  ✅ Built: {layers[arch]}")

        if failures:
            raise PublishAborted(failures)

        image = ReleaseImage(self.repository, version, layers=layers)
        if not self.push:
            print(f"Info:  Layers built locally for {image.manifest_ref} (--no-push), nothing pushed.")
            return image

        manifest_ref = image.manifest_ref
        try:
            print("📤 Pushing images...")
            for ref in layers.values():
                self.backend.push_image(ref)
            print("🔗 Creating multi-architecture manifest...")
            self.backend.create_manifest(manifest_ref, list(layers.values()))
            for target in targets:
                os_name, arch, variant = split_architecture(target.architecture_tag)
                self.backend.annotate_manifest(
                    manifest_ref, layers[target.architecture_tag], os_name, arch, variant
                )
            digest = self.backend.push_manifest(manifest_ref)
        except DockerCommandFailed as e:
            raise RegistryError(f"Publishing {manifest_ref} failed: {e}") from e

        print(f"✅ Pushed {manifest_ref} ({', '.join(layers)})")
        log.debug("Manifest digest for %s: %s", manifest_ref, digest or "<not reported>")
        return ReleaseImage(self.repository, version, layers=layers, manifest_digest=digest, pushed=True)

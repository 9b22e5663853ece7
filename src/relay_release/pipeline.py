"""End-to-end release pipeline: resolve version, build matrix, test, publish.

The version is resolved once and passed down. The build phase is a barrier:
nothing is published unless every declared platform built (and tested), and
the publish phase itself is all-or-nothing across architectures.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Iterable

from relay_release.artifacts.store import ArtifactStore
from relay_release.build.executor import (
    BuildExecutor,
    BuildOutcome,
    failed,
    run_build_phase,
    run_test_phase,
)
from relay_release.build.matrix import BuildTarget
from relay_release.ci.trigger import ReleaseTrigger, resolve_version
from relay_release.config import PipelineConfig
from relay_release.docker.backend import DockerCli, DockerCommandFailed
from relay_release.docker.dockerfile import load_template
from relay_release.docker.publish import PublishOrchestrator, ReleaseImage
from relay_release.errors import (
    BuildFailed,
    ConfigError,
    PublishAborted,
    RegistryError,
    ReleasePipelineError,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    push: bool = True
    run_tests: bool | None = None  # None: use config.tests_enabled
    strip_v_prefix: bool = False
    setup_builder: bool = False
    setup_qemu: bool = False
    max_workers: int | None = None


@dataclass
class PipelineResult:
    version: str | None = None
    builds: dict[str, BuildOutcome] = field(default_factory=dict)
    tests: dict[str, BuildOutcome] = field(default_factory=dict)
    image: ReleaseImage | None = None
    errors: list[ReleasePipelineError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.image is not None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def artifact_store(config: PipelineConfig) -> ArtifactStore:
    return ArtifactStore(config.artifacts_path, config.binary_name, prefix=config.artifact_prefix)


def build_platforms(
    config: PipelineConfig,
    targets: Iterable[BuildTarget],
    store: ArtifactStore,
    run_tests: bool = False,
    max_workers: int | None = None,
    environ: dict[str, str] | None = None,
) -> tuple[dict[str, BuildOutcome], dict[str, BuildOutcome]]:
    """Build (then optionally test) targets concurrently. Returns (build outcomes, test outcomes)."""
    targets = list(targets)
    executor = BuildExecutor(config.project_root, config.build, store, env=environ)
    print(f"🔨 Building {', '.join(t.platform_id for t in targets)}...")
    builds = run_build_phase(executor, targets, max_workers=max_workers)
    tests: dict[str, BuildOutcome] = {}
    if run_tests and not failed(builds):
        tests = run_test_phase(executor, targets, max_workers=max_workers)
    return builds, tests


def publish_from_store(
    config: PipelineConfig,
    version: str,
    store: ArtifactStore,
    options: PipelineOptions,
    backend: DockerCli | None = None,
) -> ReleaseImage:
    """Publish every declared architecture from the store. Raises PublishAborted / RegistryError / ConfigError."""
    backend = backend or DockerCli(cwd=config.project_root)
    try:
        template = load_template(config.dockerfile_template)
    except FileNotFoundError as e:
        raise ConfigError(str(e)) from e

    try:
        if options.push and config.registry_username and config.registry_token:
            print(f"🔑 Logging in to {config.registry or 'Docker Hub'} as {config.registry_username}")
            backend.login(config.registry_username, config.registry_token, config.registry)
        if options.setup_builder or options.setup_qemu:
            backend.ensure_builder(setup_qemu=options.setup_qemu)
    except DockerCommandFailed as e:
        raise RegistryError(str(e)) from e

    orchestrator = PublishOrchestrator(
        store,
        config.repository,
        backend=backend,
        base_image=config.base_image,
        dockerfile_template=template,
        push=options.push,
    )
    return orchestrator.publish(version, config.matrix.publish_targets)


def run_pipeline(
    config: PipelineConfig,
    trigger: ReleaseTrigger,
    options: PipelineOptions | None = None,
    backend: DockerCli | None = None,
    environ: dict[str, str] | None = None,
) -> PipelineResult:
    """Run the full pipeline. Never raises for pipeline failures; inspect result.errors / exit_code."""
    options = options or PipelineOptions()
    result = PipelineResult()
    env = dict(os.environ) if environ is None else environ

    try:
        result.version = resolve_version(trigger, strip_v_prefix=options.strip_v_prefix)
    except ReleasePipelineError as e:
        result.errors.append(e)
        return result
    version = result.version
    print(f"🏷️  Releasing {config.repository}:{version}")

    store = artifact_store(config)
    store.clear()

    run_tests = config.tests_enabled if options.run_tests is None else options.run_tests
    result.builds, result.tests = build_platforms(
        config,
        config.matrix.targets,
        store,
        run_tests=run_tests,
        max_workers=options.max_workers,
        environ=env,
    )
    phase_failures = failed(result.builds) or failed(result.tests)
    if phase_failures:
        result.errors.extend(o.error for o in phase_failures if o.error is not None)
        print("❌ Build phase failed; nothing will be published", file=sys.stderr)
        return result

    try:
        result.image = publish_from_store(config, version, store, options, backend=backend)
    except (PublishAborted, RegistryError, ConfigError) as e:
        result.errors.append(e)
    return result


def describe_error(err: ReleasePipelineError) -> list[str]:
    """One line per affected platform/architecture."""
    if isinstance(err, PublishAborted):
        return [f"{arch}: {inner}" for arch, inner in err.failures.items()]
    if isinstance(err, BuildFailed):
        detail = f": {err.detail}" if err.detail else ""
        return [f"{err.platform} [{err.phase.value}]{detail}"]
    return [str(err)]


def report(result: PipelineResult) -> None:
    """Print the pipeline outcome; failures go to stderr."""
    for err in result.errors:
        for line in describe_error(err):
            print(f"❌ {line}", file=sys.stderr)
    if result.ok and result.image is not None:
        if result.image.pushed:
            print(f"🎉 Released {result.image.manifest_ref}")
        else:
            print(f"🎉 Built {result.image.manifest_ref} (not pushed)")

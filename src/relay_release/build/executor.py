"""Build one matrix entry into one artifact, and run the whole matrix concurrently.

Every target is an independent task: a failure in one never cancels its
siblings, and results are keyed by platform id (completion order is not
meaningful). The phase functions return only after every task has finished.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from relay_release.artifacts.store import ArtifactStore, BuildArtifact
from relay_release.build.matrix import BuildTarget
from relay_release.build.toolchain import (
    BuildOptions,
    build_env,
    cargo_command,
    install_cross,
    output_path,
    run_cargo,
)
from relay_release.errors import BuildFailed, BuildPhase, ReleasePipelineError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOutcome:
    platform_id: str
    artifact: BuildArtifact | None = None
    error: ReleasePipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BuildExecutor:
    def __init__(
        self,
        project_root: Path,
        options: BuildOptions,
        store: ArtifactStore,
        env: dict[str, str] | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.options = options
        self.store = store
        self._env = dict(os.environ) if env is None else dict(env)

    def _prepare_workspace(self) -> None:
        # The relay embeds .env at compile time; an empty one is enough for CI builds.
        (self.project_root / ".env").touch(exist_ok=True)

    def _provision(self, target: BuildTarget) -> None:
        if not target.requires_cross_compile:
            return
        print(f"🔧 {target.platform_id}: installing cross toolchain...")
        ok, detail = install_cross(self.project_root)
        if not ok:
            raise BuildFailed(target.platform_id, BuildPhase.TOOLCHAIN, detail)

    def build(self, target: BuildTarget) -> BuildArtifact:
        """Provision (if cross), compile, verify output, store. Raises BuildFailed."""
        self._prepare_workspace()
        self._provision(target)

        cmd = cargo_command(target, self.options, "build")
        print(f"🔨 {target.platform_id}: {' '.join(cmd)}")
        env = build_env(self._env, self.options.secret_env)
        ok, detail = run_cargo(cmd, self.project_root, env)
        if not ok:
            raise BuildFailed(target.platform_id, BuildPhase.COMPILE, detail)

        out = output_path(self.project_root, target, self.options)
        if not out.is_file():
            raise BuildFailed(
                target.platform_id, BuildPhase.COMPILE, f"compiler reported success but {out} is missing"
            )
        if out.stat().st_size == 0:
            raise BuildFailed(
                target.platform_id, BuildPhase.COMPILE, f"compiler reported success but {out} is empty"
            )

        artifact = self.store.put(target.platform_id, out)
        print(f"✅ {target.platform_id}: {artifact.size} bytes stored ({artifact.sha256[:12]})")
        return artifact

    def test(self, target: BuildTarget) -> None:
        """cargo|cross test with the build's flags. Raises BuildFailed(phase=Test)."""
        cmd = cargo_command(target, self.options, "test")
        print(f"🧪 {target.platform_id}: {' '.join(cmd)}")
        env = build_env(self._env, self.options.secret_env)
        ok, detail = run_cargo(cmd, self.project_root, env)
        if not ok:
            raise BuildFailed(target.platform_id, BuildPhase.TEST, detail)
        print(f"✅ {target.platform_id}: tests passed")


def _run_phase(
    action: Callable[[BuildTarget], BuildArtifact | None],
    targets: Iterable[BuildTarget],
    max_workers: int | None,
) -> dict[str, BuildOutcome]:
    targets = list(targets)
    if not targets:
        return {}
    workers = max_workers or len(targets)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="relay-build") as pool:
        futures = {pool.submit(action, t): t for t in targets}
        wait(futures)

    outcomes: dict[str, BuildOutcome] = {}
    for fut, target in futures.items():
        exc = fut.exception()
        if exc is None:
            outcomes[target.platform_id] = BuildOutcome(target.platform_id, artifact=fut.result())
        elif isinstance(exc, ReleasePipelineError):
            outcomes[target.platform_id] = BuildOutcome(target.platform_id, error=exc)
        elif isinstance(exc, OSError):
            outcomes[target.platform_id] = BuildOutcome(
                target.platform_id, error=BuildFailed(target.platform_id, BuildPhase.COMPILE, str(exc))
            )
        else:
            raise exc
    return {t.platform_id: outcomes[t.platform_id] for t in targets}


def run_build_phase(
    executor: BuildExecutor,
    targets: Iterable[BuildTarget],
    max_workers: int | None = None,
) -> dict[str, BuildOutcome]:
    """Build all targets concurrently; returns once every target has finished."""
    return _run_phase(executor.build, targets, max_workers)


def run_test_phase(
    executor: BuildExecutor,
    targets: Iterable[BuildTarget],
    max_workers: int | None = None,
) -> dict[str, BuildOutcome]:
    """Run tests for all targets concurrently; returns once every target has finished."""
    return _run_phase(executor.test, targets, max_workers)


def failed(outcomes: dict[str, BuildOutcome]) -> list[BuildOutcome]:
    return [o for o in outcomes.values() if not o.ok]

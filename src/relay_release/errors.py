"""Error taxonomy for the release pipeline.

Every error is terminal for one pipeline invocation. Each carries the platform
and phase it affects so the CLI can print an actionable line.
"""

from __future__ import annotations

from enum import Enum


class BuildPhase(str, Enum):
    """Where a per-platform build failed."""

    TOOLCHAIN = "Toolchain"
    COMPILE = "Compile"
    TEST = "Test"


class ReleasePipelineError(RuntimeError):
    """Base class for release pipeline failures."""


class ConfigError(ReleasePipelineError):
    """Invalid or unreadable pipeline configuration."""


class MatrixMismatch(ConfigError):
    """Build and publish matrices do not describe the same platforms."""


class MissingVersion(ReleasePipelineError):
    """Trigger carries neither a supplied version nor a release tag."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"No version could be resolved from {kind} trigger")


class BuildFailed(ReleasePipelineError):
    def __init__(self, platform: str, phase: BuildPhase, detail: str = "") -> None:
        self.platform = platform
        self.phase = phase
        self.detail = detail
        msg = f"{platform} [{phase.value}]"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ArtifactMissing(ReleasePipelineError):
    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(f"No artifact stored for {platform}")


class ArtifactInvalid(ReleasePipelineError):
    def __init__(self, platform: str, reason: str) -> None:
        self.platform = platform
        self.reason = reason
        super().__init__(f"Artifact for {platform} is invalid: {reason}")


class LayerBuildFailed(ReleasePipelineError):
    def __init__(self, platform: str, architecture: str, detail: str = "") -> None:
        self.platform = platform
        self.architecture = architecture
        self.detail = detail
        msg = f"Image layer build failed for {architecture} ({platform})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class RegistryError(ReleasePipelineError):
    """Login, push or manifest command rejected by the registry tooling."""


class PublishAborted(ReleasePipelineError):
    """One or more architectures could not produce a layer; no manifest was pushed.

    ``failures`` maps architecture tag -> the error that stopped it.
    """

    def __init__(self, failures: dict[str, ReleasePipelineError]) -> None:
        self.failures = dict(failures)
        archs = ", ".join(self.failed_architectures)
        super().__init__(f"Publish aborted, incomplete architectures: {archs}")

    @property
    def failed_architectures(self) -> list[str]:
        return list(self.failures)

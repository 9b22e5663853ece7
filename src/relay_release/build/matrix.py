"""Static build/publish matrix for the relay binary.

Two views of the same platforms: the compiler triple used to build, and the
registry architecture tag used to publish. They are joined by platform id;
position in either list carries no meaning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from relay_release.errors import MatrixMismatch
from relay_release.helpers import split_architecture


@dataclass(frozen=True)
class BuildTarget:
    platform_id: str
    os_runner: str
    compiler_triple: str
    requires_cross_compile: bool = False


@dataclass(frozen=True)
class PublishTarget:
    platform_id: str
    architecture_tag: str


DEFAULT_BUILD_TARGETS: tuple[BuildTarget, ...] = (
    BuildTarget("linux-x64", "ubuntu-latest", "x86_64-unknown-linux-gnu", False),
    BuildTarget("linux-arm64", "ubuntu-latest", "aarch64-unknown-linux-gnu", True),
)

DEFAULT_PUBLISH_TARGETS: tuple[PublishTarget, ...] = (
    PublishTarget("linux-x64", "linux/amd64"),
    PublishTarget("linux-arm64", "linux/arm64/v8"),
)


def _index_unique(items: Iterable[Any], what: str) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for item in items:
        if item.platform_id in out:
            msg = f"Duplicate platform in {what} matrix: {item.platform_id}"
            raise MatrixMismatch(msg)
        out[item.platform_id] = item
    return out


class TargetMatrix:
    """Fixed, ordered set of build targets and their publish counterparts."""

    def __init__(
        self,
        build_targets: Iterable[BuildTarget] = DEFAULT_BUILD_TARGETS,
        publish_targets: Iterable[PublishTarget] = DEFAULT_PUBLISH_TARGETS,
    ) -> None:
        self._targets = tuple(build_targets)
        self._publish = tuple(publish_targets)
        if not self._targets:
            msg = "Build matrix is empty"
            raise MatrixMismatch(msg)
        by_build = _index_unique(self._targets, "build")
        by_publish = _index_unique(self._publish, "publish")

        unpublished = [p for p in by_build if p not in by_publish]
        unbuilt = [p for p in by_publish if p not in by_build]
        if unpublished or unbuilt:
            parts = []
            if unpublished:
                parts.append(f"no publish target for {', '.join(unpublished)}")
            if unbuilt:
                parts.append(f"no build target for {', '.join(unbuilt)}")
            msg = "Build and publish matrices differ: " + "; ".join(parts)
            raise MatrixMismatch(msg)

        seen_arch: set[str] = set()
        for pt in self._publish:
            try:
                split_architecture(pt.architecture_tag)
            except ValueError as e:
                raise MatrixMismatch(str(e)) from e
            if pt.architecture_tag in seen_arch:
                msg = f"Architecture {pt.architecture_tag} declared for more than one platform"
                raise MatrixMismatch(msg)
            seen_arch.add(pt.architecture_tag)

        self._by_build: dict[str, BuildTarget] = by_build
        self._by_publish: dict[str, PublishTarget] = by_publish

    @property
    def targets(self) -> tuple[BuildTarget, ...]:
        return self._targets

    @property
    def publish_targets(self) -> tuple[PublishTarget, ...]:
        return self._publish

    @property
    def platform_ids(self) -> list[str]:
        return [t.platform_id for t in self._targets]

    def get(self, platform_id: str) -> BuildTarget:
        try:
            return self._by_build[platform_id]
        except KeyError:
            known = ", ".join(self.platform_ids)
            msg = f"Unknown platform: {platform_id}. Use one of: {known}"
            raise KeyError(msg) from None

    def publish_target_for(self, platform_id: str) -> PublishTarget:
        self.get(platform_id)
        return self._by_publish[platform_id]

    def to_github_matrix(self) -> dict[str, list[dict[str, Any]]]:
        """Render as a GitHub Actions strategy matrix ({"include": [...]})."""
        include = []
        for t in self._targets:
            include.append(
                {
                    "platform": t.platform_id,
                    "os": t.os_runner,
                    "target": t.compiler_triple,
                    "cross": t.requires_cross_compile,
                    "architecture": self._by_publish[t.platform_id].architecture_tag,
                }
            )
        return {"include": include}

    @classmethod
    def from_config(cls, build: list[dict[str, Any]], publish: list[dict[str, Any]]) -> TargetMatrix:
        """Build from config dicts (keys: platform, os, target, cross / platform, architecture)."""
        try:
            build_targets = [
                BuildTarget(
                    platform_id=str(e["platform"]),
                    os_runner=str(e.get("os", "ubuntu-latest")),
                    compiler_triple=str(e["target"]),
                    requires_cross_compile=bool(e.get("cross", False)),
                )
                for e in build
            ]
            publish_targets = [
                PublishTarget(platform_id=str(e["platform"]), architecture_tag=str(e["architecture"]))
                for e in publish
            ]
        except (KeyError, TypeError, AttributeError) as e:
            msg = f"Invalid matrix entry: {e}"
            raise MatrixMismatch(msg) from e
        return cls(build_targets, publish_targets)

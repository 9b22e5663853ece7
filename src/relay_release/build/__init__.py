"""Build matrix and per-target cargo/cross builds for the relay binary."""

from .executor import (
    BuildExecutor,
    BuildOutcome,
    run_build_phase,
    run_test_phase,
)
from .matrix import (
    DEFAULT_BUILD_TARGETS,
    DEFAULT_PUBLISH_TARGETS,
    BuildTarget,
    PublishTarget,
    TargetMatrix,
)
from .toolchain import BuildOptions, cargo_command, output_path

__all__ = [
    "DEFAULT_BUILD_TARGETS",
    "DEFAULT_PUBLISH_TARGETS",
    "BuildExecutor",
    "BuildOptions",
    "BuildOutcome",
    "BuildTarget",
    "PublishTarget",
    "TargetMatrix",
    "cargo_command",
    "output_path",
    "run_build_phase",
    "run_test_phase",
]

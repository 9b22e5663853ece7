"""Shared CLI argument parsing (--project-root, --config, trigger flags)."""

from __future__ import annotations

import argparse
from pathlib import Path

from relay_release.ci.trigger import (
    DEFAULT_DISPATCH_VERSION,
    ReleaseTrigger,
    TriggerKind,
    trigger_from_env,
)
from relay_release.config import PipelineConfig, check_artifacts_dir, load_config


def path_resolver(s: str) -> Path:
    """Resolve a path argument to absolute Path (e.g. --project-root, --config)."""
    return Path(s).resolve()


def add_project_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--project-root",
        type=path_resolver,
        default=Path.cwd(),
        help="Relay crate root (default: cwd)",
    )
    ap.add_argument(
        "--config",
        type=path_resolver,
        default=None,
        help="Pipeline config (default: <project-root>/relay-release.yaml if present)",
    )
    ap.add_argument(
        "--artifacts-dir",
        type=path_resolver,
        default=None,
        help="Artifact store directory (default: <project-root>/.relay-release/artifacts)",
    )


def add_trigger_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--event",
        choices=[k.value for k in TriggerKind],
        default=None,
        help="Trigger kind (default: read GITHUB_EVENT_NAME / GITHUB_EVENT_PATH)",
    )
    ap.add_argument("--version", dest="supplied_version", default=None, help="Version for workflow_dispatch")
    ap.add_argument("--release-tag", default=None, help="Tag of the published release")
    ap.add_argument("--strip-v", action="store_true", help="Strip a leading 'v' from the version")


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    config = load_config(args.project_root, args.config)
    if getattr(args, "artifacts_dir", None) is not None:
        config.artifacts_dir = check_artifacts_dir(config.project_root, args.artifacts_dir)
    return config


def trigger_from_args(args: argparse.Namespace) -> ReleaseTrigger:
    """--event wins; otherwise the GitHub event environment. workflow_dispatch defaults to 1.0.0."""
    if args.event is None:
        return trigger_from_env()
    if args.event == TriggerKind.MANUAL_DISPATCH.value:
        version = DEFAULT_DISPATCH_VERSION if args.supplied_version is None else args.supplied_version
        return ReleaseTrigger.manual(version)
    return ReleaseTrigger.release(args.release_tag)

"""`relay-release run | resolve-version | matrix | build | publish`."""

from __future__ import annotations

import argparse
import json
import sys

from relay_release.ci.trigger import resolve_version
from relay_release.cli.parse_common import (
    add_project_args,
    add_trigger_args,
    config_from_args,
    trigger_from_args,
)
from relay_release.errors import ReleasePipelineError
from relay_release.pipeline import (
    PipelineOptions,
    PipelineResult,
    artifact_store,
    build_platforms,
    describe_error,
    publish_from_store,
    report,
    run_pipeline,
)


def _publish_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--no-push", action="store_true", help="Build layers locally, push nothing")
    ap.add_argument("--setup-builder", action="store_true", help="Create/select the buildx builder")
    ap.add_argument("--setup-qemu", action="store_true", help="Install binfmt emulators (implies --setup-builder)")


def run_run(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(prog="relay-release run", description="Build, test and publish the relay image")
    add_project_args(ap)
    add_trigger_args(ap)
    _publish_args(ap)
    tests = ap.add_mutually_exclusive_group()
    tests.add_argument("--skip-tests", dest="run_tests", action="store_false", default=None)
    tests.add_argument("--run-tests", dest="run_tests", action="store_true")
    ap.add_argument("--jobs", type=int, default=None, help="Max concurrent builds (default: one per target)")
    args = ap.parse_args(argv)

    try:
        config = config_from_args(args)
        trigger = trigger_from_args(args)
    except ReleasePipelineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    options = PipelineOptions(
        push=not args.no_push,
        run_tests=args.run_tests,
        strip_v_prefix=args.strip_v,
        setup_builder=args.setup_builder,
        setup_qemu=args.setup_qemu,
        max_workers=args.jobs,
    )
    result = run_pipeline(config, trigger, options)
    report(result)
    return result.exit_code


def run_resolve_version(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(prog="relay-release resolve-version")
    add_trigger_args(ap)
    args = ap.parse_args(argv)
    try:
        print(resolve_version(trigger_from_args(args), strip_v_prefix=args.strip_v))
    except ReleasePipelineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


def run_matrix(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(prog="relay-release matrix")
    add_project_args(ap)
    ap.add_argument("--json", action="store_true", help="GitHub Actions matrix JSON")
    args = ap.parse_args(argv)
    try:
        config = config_from_args(args)
    except ReleasePipelineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    matrix = config.matrix
    if args.json:
        print(json.dumps(matrix.to_github_matrix(), separators=(",", ":")))
        return 0
    for t in matrix.targets:
        pt = matrix.publish_target_for(t.platform_id)
        mode = "cross" if t.requires_cross_compile else "native"
        print(f"{t.platform_id:<14} {t.compiler_triple:<28} {mode:<6} {pt.architecture_tag}")
    return 0


def run_build(argv: list[str]) -> int:
    """Build one platform (or all) into the artifact store; used by split CI build jobs."""
    ap = argparse.ArgumentParser(prog="relay-release build")
    ap.add_argument("platform", help="Platform id from the matrix, or 'all'")
    add_project_args(ap)
    ap.add_argument("--run-tests", action="store_true", help="Run cargo/cross test after building")
    args = ap.parse_args(argv)
    try:
        config = config_from_args(args)
        if args.platform == "all":
            targets = list(config.matrix.targets)
        else:
            targets = [config.matrix.get(args.platform)]
    except (ReleasePipelineError, KeyError) as e:
        print(f"❌ {e.args[0] if isinstance(e, KeyError) else e}", file=sys.stderr)
        return 1

    builds, tests = build_platforms(config, targets, artifact_store(config), run_tests=args.run_tests)
    result = PipelineResult(builds=builds, tests=tests)
    for outcome in [*builds.values(), *tests.values()]:
        if outcome.error is not None:
            result.errors.append(outcome.error)
    report(result)
    return 1 if result.errors else 0


def run_publish(argv: list[str]) -> int:
    """Publish from an artifact store populated by earlier build jobs."""
    ap = argparse.ArgumentParser(prog="relay-release publish")
    add_project_args(ap)
    ap.add_argument("--version", required=True, help="Resolved release version (image tag)")
    _publish_args(ap)
    args = ap.parse_args(argv)
    try:
        config = config_from_args(args)
        store = artifact_store(config)
        print(f"📦 Artifacts present: {', '.join(store.platforms()) or 'none'}")
        options = PipelineOptions(
            push=not args.no_push, setup_builder=args.setup_builder, setup_qemu=args.setup_qemu
        )
        image = publish_from_store(config, args.version, store, options)
    except ReleasePipelineError as e:
        for line in describe_error(e):
            print(f"❌ {line}", file=sys.stderr)
        return 1
    report(PipelineResult(version=args.version, image=image))
    return 0

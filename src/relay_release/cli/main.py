"""Main CLI entry point for relay-release."""

import logging
import sys

from relay_release.cli import pipeline_cmd

COMMANDS = {
    "run": pipeline_cmd.run_run,
    "resolve-version": pipeline_cmd.run_resolve_version,
    "matrix": pipeline_cmd.run_matrix,
    "build": pipeline_cmd.run_build,
    "publish": pipeline_cmd.run_publish,
}


def _usage() -> None:
    print("Usage: relay-release [-v] <command> [args...]", file=sys.stderr)
    print("Commands:", file=sys.stderr)
    print("  run                  - Resolve version, build all targets, test, publish", file=sys.stderr)
    print("  resolve-version      - Print the version resolved from the trigger", file=sys.stderr)
    print("  matrix [--json]      - Print the build/publish matrix", file=sys.stderr)
    print("  build <platform|all> - Build into the artifact store", file=sys.stderr)
    print("  publish --version V  - Publish the multi-arch image from the artifact store", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = False
    while args and args[0] in ("-v", "--verbose"):
        verbose = True
        args.pop(0)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args:
        _usage()
        sys.exit(1)

    command, rest = args[0], args[1:]
    if command in COMMANDS:
        sys.exit(COMMANDS[command](rest))
    else:
        print(f"Error: Unknown command: {command}", file=sys.stderr)
        _usage()
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Command-line interface for ctprobe.

This module handles argument parsing, command routing, and user interaction.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from .version import __version__
from .config import ProbeSettings, Suite
from .errors import ConfigError, HarnessError
from .harness import prune_containers
from .helpers import run_suite
from .image import IMAGE_ENV_VAR, get_test_image
from .provider import get_provider

# Process exit codes
EXIT_OK = 0
EXIT_PROBE_FAILED = 1
EXIT_ERROR = 2


def setup_logging(verbose, quiet):
    """Configure logging based on verbosity flags."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s", stream=sys.stderr)
    elif quiet:
        logging.basicConfig(level=logging.ERROR, stream=sys.stderr)
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)


def parse_env_args(env_args):
    """Parse --env values: NAME=VALUE sets, NAME passes the host value."""
    env = {}
    for item in env_args or []:
        if "=" in item:
            name, value = item.split("=", 1)
        else:
            name = item
            if name not in os.environ:
                raise ConfigError(f"--env {name}: not set in the host environment")
            value = os.environ[name]
        if not name:
            raise ConfigError(f"Invalid --env value: {item!r}")
        env[name] = value
    return env


def settings_overrides(args):
    """Settings given on the command line."""
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.runtime:
        overrides["runtime"] = args.runtime
    if args.timeout is not None:
        overrides["ready_timeout"] = args.timeout
    return overrides


def settings_from_args(args):
    """Settings from the environment, with CLI overrides applied."""
    return ProbeSettings.from_environ().merged(settings_overrides(args))


def cmd_check(args):
    """Run suites and exit with the combined status."""
    try:
        settings = settings_from_args(args)
        extra_env = parse_env_args(args.env)
        suites = [Suite.load(Path(p)) for p in args.suites]
        provider = get_provider(settings)
    except (ConfigError, HarnessError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    exit_code = EXIT_OK
    for suite in suites:
        image = args.image or get_test_image(suite.image)
        if not args.quiet:
            print(f"[ctprobe] {suite.name}: {image}", file=sys.stderr)

        try:
            # Command-line options beat the suite's [settings] table
            report = run_suite(
                provider,
                suite,
                image=image,
                settings=settings,
                extra_env=extra_env,
                overrides=settings_overrides(args),
            )
        except (ConfigError, HarnessError) as e:
            print(f"Error: {suite.name}: {e}", file=sys.stderr)
            exit_code = EXIT_ERROR
            continue

        for line in report.summary():
            print(line)
        if not report.passed and exit_code == EXIT_OK:
            exit_code = EXIT_PROBE_FAILED

    sys.exit(exit_code)


def cmd_show(args):
    """Show a suite as it would be run."""
    try:
        suite = Suite.load(Path(args.suite))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    print(f"suite: {suite.name}")
    print(f"  image = {get_test_image(suite.image)!r}")
    if get_test_image(suite.image) != suite.image:
        print(f"  # default {suite.image!r} overridden by {IMAGE_ENV_VAR}")
    for name, value in sorted(suite.config.env.items()):
        print(f"  env.{name} = {value!r}")
    for key, value in sorted(suite.settings.items()):
        print(f"  settings.{key} = {value!r}")
    print("probes:")
    if suite.expectations:
        for expectation in suite.expectations:
            print(f"  [{expectation.kind}] {expectation.describe()}")
    else:
        print("  # No probes defined")


def cmd_prune(args):
    """Remove containers left behind by interrupted runs."""
    try:
        provider = get_provider(settings_from_args(args))
        removed = prune_containers(provider)
    except (ConfigError, HarnessError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    for container_id in removed:
        print(container_id)


def _add_runtime_options(parser):
    parser.add_argument(
        "--backend",
        choices=["cli", "sdk"],
        help="Container backend: runtime CLI or Docker Engine API (default: $CTPROBE_BACKEND or cli)",
    )
    parser.add_argument(
        "--runtime",
        help="Container runtime binary for the cli backend (default: $RUNNER or docker)",
    )


def create_parser():
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="ctprobe",
        description="ctprobe checks that container images expose expected files, HTTP endpoints and commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,  # Require full option names
    )

    parser.add_argument("--version", action="version", version=f"ctprobe {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-essential output")

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    check_parser = subparsers.add_parser(
        "check",
        help="Run probe suites against their images",
        description=f"""Run probe suites against their images

Examples:
    ctprobe check apps/actions-runner                 # Uses apps/actions-runner/container-test.toml
    ctprobe check apps/*/container-test.toml          # Every app
    ctprobe check --image my/app:dev apps/app         # Test a locally built image
    {IMAGE_ENV_VAR}=my/app:dev ctprobe check apps/app     # Same, through the environment

Exit codes: 0 all checks passed, 1 a check failed, 2 harness or configuration error.""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_parser.add_argument("suites", nargs="+", help="Suite file or directory holding container-test.toml")
    check_parser.add_argument("--image", help="Image to test instead of the suite's image")
    check_parser.add_argument(
        "--env",
        action="append",
        dest="env",
        help="Set environment variable in the container (NAME=VALUE) or pass from host (NAME)",
    )
    check_parser.add_argument("--timeout", type=float, help="Readiness timeout in seconds")
    _add_runtime_options(check_parser)

    show_parser = subparsers.add_parser("show", help="Show a suite and its probes")
    show_parser.add_argument("suite", help="Suite file or directory holding container-test.toml")

    prune_parser = subparsers.add_parser("prune", help="Remove containers left behind by interrupted runs")
    _add_runtime_options(prune_parser)
    prune_parser.set_defaults(timeout=None)

    return parser


def main(argv=None):
    """Main entry point."""
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.quiet)

    if args.subcommand == "check":
        cmd_check(args)
    elif args.subcommand == "show":
        cmd_show(args)
    elif args.subcommand == "prune":
        cmd_prune(args)
    else:
        parser.print_help()
        sys.exit(EXIT_ERROR)

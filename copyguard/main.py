"""copyguard/main.py: command-line entry point.

Usage examples
--------------
    # Check every module under src/
    copyguard check src/

    # GCC-style output for editors, with a configuration file
    copyguard check pkg/models.py --config ci.copyguard -f gcc

    # Refuse to let ``for x in param`` satisfy every collection member
    copyguard check src/ --strict-iteration

    # List the rules
    copyguard rules

Exit codes
----------
    0   Success (no error-severity diagnostics).
    1   One or more diagnostics with severity ERROR were emitted.
    2   Infrastructure failure (bad configuration, unreadable file, ...).

``python -m copyguard`` runs :func:`main` as well.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import time
from pathlib import Path
from typing import Optional, Sequence, TextIO

from copyguard import __version__
from copyguard.checkers import (
    RESERVED_RULE_IDS,
    RULES,
    CheckerRunner,
    default_registry,
)
from copyguard.config import load_config
from copyguard.errors import ConfigError, CopyGuardError
from copyguard.reporter import FORMATS, Reporter

_log = logging.getLogger("copyguard")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``copyguard`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("copyguard")
    root.setLevel(level)
    if not any(getattr(h, "_copyguard", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        handler._copyguard = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


# ===========================================================================
# Subcommands
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Analyse the given files and directories."""
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA
    if args.strict_iteration:
        config = config.with_overrides(global_iteration_satisfies_all=False)

    runner = CheckerRunner(config)
    t0 = time.monotonic()
    try:
        results = runner.run_paths(args.paths)
    except CopyGuardError as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA
    _log.info("Analysis completed in %.3fs", time.monotonic() - t0)
    _log.info("%s", results.summary())

    out = _open_output(args.output)
    color = False if args.no_color or out is not sys.stdout else None
    try:
        with Reporter(out, fmt=args.format, color=color) as reporter:
            reporter.emit_all(results.diagnostics)
    finally:
        if out is not sys.stdout:
            out.close()

    if results.errors or results.cancelled:
        return EXIT_INFRA
    return EXIT_ERROR if results.error_count > 0 else EXIT_OK


def cmd_rules(args: argparse.Namespace) -> int:
    """Print the rule table."""
    for rule_id in sorted(RESERVED_RULE_IDS | set(RULES)):
        rule = RULES.get(rule_id)
        if rule is None:
            print(f"  {rule_id}  (reserved)")
            continue
        print(f"  {rule.rule_id}  {rule.error_id:20s} {rule.severity.value:8s} {rule.title}")
        if args.verbose:
            for line in textwrap.wrap(rule.description, 66):
                print(f"{'':8s}{line}")
            for cls in default_registry().filter_by_rule(rule.rule_id):
                print(f"{'':8s}checker: {cls.name}")
    return EXIT_OK


# ===========================================================================
# Parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="copyguard",
        description=(
            "copyguard: static verifier for deep-copy procedures.\n\n"
            "Checks that every @deep_copy procedure takes one closed\n"
            "parameter and reads every member reachable from it."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              copyguard check src/
              copyguard check models.py -f json -o report.jsonl
              copyguard rules
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Verify the deep_copy procedures in files or directories.",
        description=(
            "Parse the given Python files (directories are scanned "
            "recursively) and verify every procedure decorated with "
            "deep_copy."
        ),
    )
    p_check.add_argument("paths", nargs="+", metavar="PATH",
                         help="Python file or directory.")
    p_check.add_argument(
        "-c", "--config",
        default=None,
        metavar="FILE",
        help="Configuration file (default: ./.copyguard when present).",
    )
    p_check.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p_check.add_argument(
        "-f", "--format",
        choices=FORMATS,
        default="text",
        help="Output format (default: text).",
    )
    p_check.add_argument(
        "--no-color",
        action="store_true",
        help="Disable coloured text output.",
    )
    p_check.add_argument(
        "--strict-iteration",
        action="store_true",
        help="Iterating the parameter itself does not satisfy collection members.",
    )
    p_check.set_defaults(func=cmd_check)

    # --- rules -------------------------------------------------------------
    p_rules = subparsers.add_parser("rules", help="List the rules.")
    p_rules.set_defaults(func=cmd_rules)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the copyguard CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())

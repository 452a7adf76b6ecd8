"""Command-line entry point for syncrep.

Commands:
    watch  Pull from the sync folder, then mirror both sides until interrupted.
    push   Copy every participating vault file to the sync folder.
    pull   Two-phase full sync from the sync folder into the vault.
    init   Write a starter config file and record --folder, --interval, --mode.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .config_loader import (
    config_target,
    read_config_file,
    save_config,
    write_starter_config,
)
from .config_schema import SyncConfig
from .core.async_utils import run_sync
from .lifespan import sync_lifespan
from .sync.outbound import Confirm
from .sync.reporter import format_sync_report, report_to_json

logger = logging.getLogger(__name__)


def _fixed_answer(answer: bool) -> Confirm:
    async def _confirm(message: str) -> bool:
        logger.info("%s -> %s", message, "yes" if answer else "no")
        return answer

    return _confirm


async def _prompt(message: str) -> bool:
    """Ask on the terminal; anything but an explicit yes declines."""
    if not sys.stdin.isatty():
        logger.warning("%s (no terminal, keeping external copy)", message)
        return False
    try:
        reply = await run_sync(input, f"{message} [y/N] ")
    except EOFError:
        return False
    return reply.strip().lower() in ("y", "yes")


def _make_confirm(args: argparse.Namespace) -> Confirm:
    if args.yes:
        return _fixed_answer(True)
    if args.keep_external:
        return _fixed_answer(False)
    return _prompt


def _config_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.folder:
        overrides["folder"] = args.folder
    if args.vault:
        overrides["vault"] = args.vault
    if args.debug:
        overrides["debug"] = True
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.interval is not None:
        overrides["interval"] = args.interval
    if args.mode:
        overrides["mode"] = args.mode
    return overrides


def _init(args: argparse.Namespace) -> Path:
    """Create the config file and save any sync settings given with ``init``."""
    path = Path(args.config).expanduser() if args.config else config_target()
    write_starter_config(path)

    settings: dict = {}
    if args.folder:
        settings["sync_folder_path"] = str(Path(args.folder).expanduser().resolve())
    if args.interval is not None:
        settings["sync_interval"] = args.interval
    if args.mode:
        settings["sync_mode"] = args.mode
    if settings:
        current = read_config_file(path).get("sync")
        if not isinstance(current, dict):
            current = {}
        save_config(SyncConfig(**{**current, **settings}), path)
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncrep",
        description="Mirror a vault directory and an external sync folder in both directions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter config in ./.syncrep/config.yml
  syncrep init

  # Save the sync folder and a 5 minute push interval in that file
  syncrep --folder ~/mirror --interval 300 init

  # Mirror the current directory with ~/mirror until interrupted
  syncrep --folder ~/mirror watch

  # One-off push of every vault file, as JSON
  syncrep --vault ~/vault --folder ~/mirror push --json

  # Pull without ever deleting external files
  syncrep --keep-external pull
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file path (takes precedence over SYNCREP_CONFIG and discovered files)",
    )
    parser.add_argument(
        "--vault",
        help="Vault directory (default: current directory)",
    )
    parser.add_argument(
        "--folder",
        help="External sync folder (takes precedence over SYNCREP_FOLDER and config files)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Seconds between periodic pushes, 0 disables",
    )
    parser.add_argument(
        "--mode",
        choices=["all", "include"],
        help="Which vault paths participate",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")

    answers = parser.add_mutually_exclusive_group()
    answers.add_argument(
        "--yes",
        action="store_true",
        help="Delete external counterparts of deleted vault entries without asking",
    )
    answers.add_argument(
        "--keep-external",
        action="store_true",
        help="Never delete external counterparts of deleted vault entries",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"syncrep version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("watch", help="Mirror both sides until interrupted")
    for name, help_text in (
        ("push", "Copy every vault file to the sync folder"),
        ("pull", "Bring the vault up to date with the sync folder"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "--json", action="store_true", help="Print the report as JSON"
        )
    sub.add_parser(
        "init", help="Write a config file, saving --folder, --interval and --mode"
    )
    return parser


async def main(args: argparse.Namespace) -> int:
    """Run one CLI command and return the process exit code."""
    if args.command == "init":
        try:
            path = _init(args)
        except (OSError, ValueError) as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 2
        print(f"Config file: {path}")
        return 0

    try:
        async with sync_lifespan(
            config_overrides=_config_overrides(args),
            confirm=_make_confirm(args),
            watch=args.command == "watch",
        ) as ctx:
            engine = ctx["engine"]
            if args.command == "watch":
                await asyncio.Event().wait()
                return 0
            if args.command == "push":
                report = await engine.sync_all_files()
            else:
                report = await engine.sync_from_external()
    except RuntimeError:
        return 2

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_sync_report(report))
    return 1 if report.errors else 0


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    if args.config:
        os.environ["SYNCREP_CONFIG"] = args.config

    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()

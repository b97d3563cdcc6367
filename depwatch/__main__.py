import os
import sys
import logging
import argparse
from typing import List, Optional

from rich.console import Console
from rich.markup import escape

from depwatch.__version__ import __version__
from depwatch.core.deepscan import DeepScanner
from depwatch.core.errors import DepwatchError
from depwatch.core.remediate import remediate
from depwatch.core.report import write_report
from depwatch.core.scanner import run_audit
from depwatch.core.watchlist import AuditConfig, load_config
from depwatch.managers import detect_manager

console = Console()
err_console = Console(stderr=True)


def setup_logging(debug: bool) -> None:
    if debug:
        logging.basicConfig(
            filename="debug.log",
            level=logging.DEBUG,
            filemode="w",
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s - %(message)s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="depwatch",
        description="Audit a project's resolved dependency tree against a watchlist of compromised packages.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-C", "--project", default=".", help="project root (default: current directory)")
    parser.add_argument("--config", help="TOML file extending the built-in watchlist (default: depwatch.toml)")
    parser.add_argument("--debug", action="store_true", help="write a debug log to debug.log")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("audit", help="walk the dependency tree and write the CSV report (default)")
    sub.add_parser("fix", help="add safe overrides, remove installed modules and lockfiles, reinstall")
    sub.add_parser("deep-scan", help="run SafeDep vet, asking before every install or scan step")
    sub.add_parser("browse", help="explore the dependency tree interactively")
    return parser


def _require_manager(project_dir: str):
    if not os.path.isdir(project_dir):
        raise DepwatchError(f"Project directory not found: {os.path.abspath(project_dir)}")
    manager = detect_manager(project_dir)
    if not manager:
        raise DepwatchError(f"No supported project found in {os.path.abspath(project_dir)}.")
    return manager


def cmd_audit(project_dir: str, config: AuditConfig) -> int:
    manager = _require_manager(project_dir)
    console.print(f"Auditing project: {escape(os.path.abspath(project_dir))}")

    result = run_audit(project_dir, manager, config)
    csv_path = write_report(project_dir, result, config)

    console.print(f"CSV written to: {escape(str(csv_path))}")
    colour = "red" if result.infected else "green"
    console.print(f"Overall status: [bold {colour}]{result.status}[/]")

    if result.infected:
        console.print("\nDetected known-bad versions in the tree:")
        for occ in result.flagged:
            console.print(f"  [red]{escape(occ.name)}@{escape(occ.version)}[/]  {escape(occ.parent_chain)}")
        console.print("Please run [bold]depwatch fix[/] to apply safe overrides and reinstall.")
    else:
        console.print("\nNo known-bad versions detected (based on current rules). Review CSV for details.")
    return 0


def cmd_fix(project_dir: str, config: AuditConfig) -> int:
    manager = _require_manager(project_dir)
    remediate(project_dir, manager, config, console)
    return 0


def cmd_deep_scan(project_dir: str, config: AuditConfig) -> int:
    DeepScanner(console, project_dir).run()
    return 0


def cmd_browse(project_dir: str, config: AuditConfig) -> int:
    from depwatch.app import DepwatchApp

    app = DepwatchApp(project_dir, _require_manager(project_dir), config)
    app.run()
    return 0


COMMANDS = {
    "audit": cmd_audit,
    "fix": cmd_fix,
    "deep-scan": cmd_deep_scan,
    "browse": cmd_browse,
}


def main(argv: Optional[List[str]] = None) -> int:
    """ Entrypoint when is installed via pip """
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    command = args.command or "audit"
    try:
        config = load_config(args.project, args.config)
        return COMMANDS[command](args.project, config)
    except DepwatchError as e:
        logging.info(f"{command} failed: {e}")
        err_console.print(f"[bold red]Error:[/] {escape(str(e))}")
        return 1
    except KeyboardInterrupt:
        err_console.print("Interrupted.")
        return 130


# Development mode
if __name__ == "__main__":
    sys.exit(main())

"""
Command line entry point.

    cgifreeze fetch SITE [-c config/sites.yml] [-o archive] [--village-ids 1 2]
    cgifreeze list [-c config/sites.yml]
    cgifreeze version
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from cgifreeze import __version__
from cgifreeze.core.controller import ArchiveController, RunOptions
from cgifreeze.core.exceptions import ConfigError
from cgifreeze.core.logger import initialize_logging, ErrorTracker
from cgifreeze.utils.config import ConfigLoader


DEFAULT_CONFIG = "config/sites.yml"
DEFAULT_OUTPUT = "archive"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cgifreeze",
        description="Archive CGI-driven community sites into a static, offline-browsable tree",
    )
    subparsers = p.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="archive a configured site")
    fetch.add_argument("site", help="site key from the configuration file")
    fetch.add_argument("-c", "--config", default=DEFAULT_CONFIG, help="site configuration (YAML)")
    fetch.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="output directory")
    fetch.add_argument("--village-ids", nargs="+", default=None, help="village ids to archive")
    fetch.add_argument("--user-ids", nargs="+", default=None, help="user ids to archive")
    fetch.add_argument("--auto-discover", action="store_true", help="collect ids from the list pages")
    group = fetch.add_mutually_exclusive_group()
    group.add_argument("--users-only", action="store_true", help="only the user list and user pages")
    group.add_argument("--villages-only", action="store_true", help="only the village list and village pages")
    group.add_argument("--static-only", action="store_true", help="only the static pages")
    fetch.add_argument("--log-level", choices=LOG_LEVELS, default=None,
                       help="console log level (default: $CGIFREEZE_LOG_LEVEL or INFO)")
    fetch.add_argument("--log-dir", default="logs", help="directory for log files")
    fetch.add_argument("--error-report", default=None, help="write a detailed error report here")

    list_cmd = subparsers.add_parser("list", help="list configured sites")
    list_cmd.add_argument("-c", "--config", default=DEFAULT_CONFIG, help="site configuration (YAML)")

    subparsers.add_parser("version", help="print the version")
    return p


def print_progress(event: dict) -> None:
    if event.get("type") == "plan":
        print(f"Pages to archive: {event['total']}")
    elif event.get("type") == "page" and event.get("stage") != "processing":
        print(f"[{event['index']}/{event['total']}] {event['stage']} {event['url']}")


def cmd_fetch(args: argparse.Namespace) -> int:
    logger = initialize_logging(args.log_dir, args.log_level)
    tracker = ErrorTracker(logger)
    try:
        site = ConfigLoader(args.config).site(args.site)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    controller = ArchiveController(site, output_dir=args.output, logger=logger, error_tracker=tracker)
    options = RunOptions(
        village_ids=args.village_ids,
        user_ids=args.user_ids,
        auto_discover=args.auto_discover,
        users_only=args.users_only,
        villages_only=args.villages_only,
        static_only=args.static_only,
    )
    try:
        result = controller.run(options, progress=print_progress)
    except KeyboardInterrupt:
        controller.stop()
        print("Interrupted", file=sys.stderr)
        return 130
    finally:
        controller.close()

    print("=" * 60)
    print(result.summary())
    print()
    stats = controller.files.get_output_stats()
    print(f"Archive: {stats['html_files']} pages, {stats['asset_files']} other files, "
          f"{stats['total_size']} bytes in {stats['archive_dir']}")
    if tracker.errors:
        counts = ", ".join(f"{name} x{n}" for name, n in sorted(tracker.error_types().items()))
        print(f"Errors by type: {counts}")
    print("=" * 60)

    if args.error_report and tracker.has_issues:
        tracker.save_error_report(args.error_report)
    return 0 if result.success else 1


def cmd_list(args: argparse.Namespace) -> int:
    try:
        loader = ConfigLoader(args.config)
        print("Configured sites:")
        for key in loader.site_names():
            print(f"  - {key}: {loader.site(key).name}")
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    if args.command == "fetch":
        return cmd_fetch(args)
    if args.command == "list":
        return cmd_list(args)
    print(f"cgifreeze {__version__}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

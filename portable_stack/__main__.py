"""
Entry point for the portable_stack installer.
"""

import argparse
import asyncio
import logging
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

from dependency_injector import providers

from .application.domain import Component, NeedsManualIntervention
from .application.exceptions import StackError
from .infrastructure.containers import Container
from .infrastructure.manual import WatchedFolder

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Applies basic logging configuration."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


async def ask(prompt: str) -> str:
    """Reads a line from the operator without blocking the event loop."""
    return (await asyncio.to_thread(input, prompt)).strip().lower()


async def resolve_manually(request: NeedsManualIntervention) -> Optional[Path]:
    """Guides the operator through a manual download, polling the watched folder."""
    folder = WatchedFolder()
    print()
    print(request.instructions)
    try:
        webbrowser.open(request.page_url)
    except webbrowser.Error as e:
        logger.debug(f"Could not open a browser: {e}")

    while True:
        found = folder.locate(request)
        if found is not None:
            print(f"Found {found}")
            return folder.adopt(found, request)
        answer = await ask(
            "Press Enter once the download has finished, or type 'skip' to give up: "
        )
        if answer == "skip":
            return None
        print(f"Nothing matching '{request.pattern}' yet.")


async def confirm_continue(component: Component, reason: str) -> bool:
    """Asks the operator before continuing without a failed component."""
    print()
    print(f"{component.name} could not be installed:\n  {reason}")
    answer = await ask("Continue with the remaining steps anyway? [y/N] ")
    return answer in ("y", "yes")


async def run_application(args: argparse.Namespace) -> int:
    """Wires and runs the application using the DI container."""

    container = Container()
    container.cli_args.from_dict(vars(args))
    setup_logging(
        level="DEBUG" if args.verbose else container.config().logging.level
    )
    container.intervention_handler.override(providers.Object(resolve_manually))
    container.failure_handler.override(providers.Object(confirm_continue))

    try:
        installer_service = container.installer_service()
        report = await installer_service.run(
            component_keys=args.components, skip_database=args.skip_database
        )
    except StackError as e:
        logger.error(f"An application error occurred: {e}")
        return 1
    finally:
        await container.http_client().aclose()

    for key, status in report.statuses.items():
        logger.info(f"{key}: {status.value}")
    params = container.parameters()
    logger.info(f"Stack ready in {params.root}; the app will answer on {params.app_url}")
    return 0 if report.succeeded else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portable-stack",
        description="Provision a portable web server, PHP, MariaDB, Composer and Git stack",
    )

    parser.add_argument("--root", help="Target directory of the installation")
    parser.add_argument("--app-port", type=int, help="Port the web server listens on")
    parser.add_argument("--db-port", type=int, help="Port the database listens on")
    parser.add_argument("--db-name", help="Name of the application database")
    parser.add_argument("--db-user", help="Application database user")
    parser.add_argument("--db-password", help="Password of the application database user")

    parser.add_argument(
        "--components",
        nargs="+",
        help="Install only these components, e.g. apache php",
    )

    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore remembered download locations and discover them again.",
    )

    parser.add_argument(
        "--skip-database",
        action="store_true",
        help="Do not initialize the database or create the application user.",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug details, including why discovery tiers were skipped.",
    )

    return parser


def main(argv: Optional[List[str]] = None):
    cli_args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run_application(cli_args)))


if __name__ == "__main__":
    main()

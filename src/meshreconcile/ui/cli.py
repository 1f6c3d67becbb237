from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from meshreconcile.app import COMPONENTS, reconcile_components
from meshreconcile.config import ConfigurationError, configure_logging
from meshreconcile.resources import load_mesh_config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile mesh components against a cluster")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every reconciled object and its differing paths",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile mesh components")
    reconcile.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to the mesh configuration resource (YAML or JSON)",
    )
    reconcile.add_argument(
        "--component",
        action="append",
        choices=sorted(COMPONENTS),
        help="Component to reconcile; repeat for several (defaults to all)",
    )

    subparsers.add_parser("components", help="List the components that can be reconciled")

    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    if parsed_args.command == "components":
        for name in sorted(COMPONENTS):
            log.info(name)
        return

    try:
        config = load_mesh_config(parsed_args.config)
    except ConfigurationError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        reconcile_components(config, components=parsed_args.component)
    except Exception:
        log.exception("Fatal error during reconcile")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()

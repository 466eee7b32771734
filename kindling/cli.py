"""The ``kind`` command line: managing local Kubernetes clusters."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Sequence

from kindling import nodes
from kindling.constants import DEFAULT_CLUSTER_NAME
from kindling.exec import CommandError
from kindling.node import NodeError

VERSION = "v0.6.0-alpha"
"""The CLI version."""

DEFAULT_LOG_LEVEL = "warning"

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}
_LEVELS_STRING = "[panic fatal error warning info debug trace]"

_PACKAGE_LOGGER = logging.getLogger("kindling")
logger = logging.getLogger(__name__)
_handler: logging.Handler | None = None


class _UsageError(Exception):
    """A command was given arguments it does not accept."""


class _TextFormatter(logging.Formatter):
    """Formats records as ``LEVL[HH:MM:SS] message``."""

    def __init__(self) -> None:
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname[:4].upper()
        return f"{level}[{self.formatTime(record, self.datefmt)}] {record.getMessage()}"


def _install_log_handler() -> None:
    global _handler
    if _handler is not None:
        _PACKAGE_LOGGER.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(_TextFormatter())
    _PACKAGE_LOGGER.addHandler(_handler)
    _PACKAGE_LOGGER.propagate = False


def _apply_log_level(name: str) -> None:
    _PACKAGE_LOGGER.setLevel(_LEVELS[DEFAULT_LOG_LEVEL])
    level = _LEVELS.get(name.strip().lower())
    if level is None:
        logger.warning(
            "Invalid log level '%s', defaulting to '%s'", name, DEFAULT_LOG_LEVEL
        )
        return
    _PACKAGE_LOGGER.setLevel(level)


def list_clusters() -> list[str]:
    """Return the names of the clusters for which node containers exist."""
    try:
        by_cluster = nodes.list_by_cluster()
    except (NodeError, CommandError) as err:
        raise NodeError(f"could not list clusters: {err}") from err
    return list(by_cluster)


def is_known(name: str) -> bool:
    """Report whether a cluster named ``name`` exists."""
    return name in list_clusters()


def _show_help(parser: argparse.ArgumentParser) -> Callable[[argparse.Namespace], None]:
    def handler(args: argparse.Namespace) -> None:
        parser.print_help()

    return handler


def _run_version(args: argparse.Namespace) -> None:
    print(VERSION)


def _run_get_clusters(args: argparse.Namespace) -> None:
    for name in list_clusters():
        print(name)


def _run_get_nodes(args: argparse.Namespace) -> None:
    by_cluster = nodes.list_by_cluster()
    if args.name not in by_cluster:
        raise _UsageError(f'unknown cluster "{args.name}"')
    for node in by_cluster[args.name]:
        print(node.name)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``kind`` command and its subcommands."""
    parser = argparse.ArgumentParser(
        prog="kind",
        description=(
            "kind creates and manages local Kubernetes clusters "
            "using Docker container 'nodes'"
        ),
    )
    parser.add_argument(
        "--loglevel",
        default=DEFAULT_LOG_LEVEL,
        help=f"log level {_LEVELS_STRING}",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s version {VERSION}"
    )
    parser.set_defaults(handler=_show_help(parser))
    commands = parser.add_subparsers(title="commands", metavar="<command>")

    version = commands.add_parser("version", help="prints the kind CLI version")
    version.set_defaults(handler=_run_version)

    get = commands.add_parser(
        "get", help="Gets one of [clusters, nodes]", description="Gets one of [clusters, nodes]"
    )
    get.set_defaults(handler=_show_help(get))
    get_commands = get.add_subparsers(title="commands", metavar="<command>")

    clusters = get_commands.add_parser(
        "clusters", help="lists existing kind clusters by their name"
    )
    clusters.set_defaults(handler=_run_get_clusters)

    get_nodes = get_commands.add_parser(
        "nodes", help="lists existing kind nodes by their name"
    )
    get_nodes.add_argument(
        "--name", default=DEFAULT_CLUSTER_NAME, help="the cluster context name"
    )
    get_nodes.set_defaults(handler=_run_get_nodes)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``kind`` command; return the process exit status."""
    _install_log_handler()
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exit_:
        return 0 if exit_.code in (None, 0) else 1
    _apply_log_level(args.loglevel)
    try:
        args.handler(args)
    except (_UsageError, NodeError, CommandError, OSError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
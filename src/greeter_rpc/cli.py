"""Command-line entry point: greet the server once and exit.

Usage: greeter-rpc [name] [firstName] [cin] [target]
"""

import argparse
import logging
import sys
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict

from .channel import TransportSecurity, managed_channel
from .client import GreeterClient
from .config import (
    DEFAULT_CIN,
    DEFAULT_FIRST_NAME,
    DEFAULT_NAME,
    DEFAULT_TARGET,
    configure_logging,
    get_call_timeout,
    get_shutdown_timeout,
)

logger = logging.getLogger(__name__)


class ClientArgs(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = DEFAULT_NAME
    first_name: str = DEFAULT_FIRST_NAME
    cin: str = DEFAULT_CIN
    target: str = DEFAULT_TARGET


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="greeter-rpc",
        usage="%(prog)s [name] [firstName] [cin] [target]",
        description="Request a greeting from the Greeter service.",
        add_help=False,
    )
    _ = parser.add_argument(
        "name",
        nargs="?",
        default=DEFAULT_NAME,
        help="The name you wish to be greeted by. Defaults to %(default)s",
    )
    _ = parser.add_argument(
        "first_name",
        metavar="firstName",
        nargs="?",
        default=DEFAULT_FIRST_NAME,
        help="The first name for the greeting. Defaults to %(default)s",
    )
    _ = parser.add_argument(
        "cin",
        nargs="?",
        default=DEFAULT_CIN,
        help="The CIN for the greeting. Defaults to %(default)s",
    )
    _ = parser.add_argument(
        "target",
        nargs="?",
        default=DEFAULT_TARGET,
        help="The server to connect to. Defaults to %(default)s",
    )
    return parser


def parse_args(argv: Sequence[str]) -> ClientArgs:
    """Map up to four positional arguments onto the client arguments.

    Values are taken by position, so they may start with a dash. Anything
    past the fourth argument is ignored.
    """
    values = list(argv)
    if len(values) > len(ClientArgs.model_fields):
        logger.debug("Ignoring extra arguments: %s", values[len(ClientArgs.model_fields) :])
    return ClientArgs(**dict(zip(ClientArgs.model_fields, values)))


def main(argv: Sequence[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "--help":
        build_parser().print_help(file=sys.stderr)
        sys.exit(1)

    configure_logging()
    args = parse_args(argv)

    with managed_channel(
        args.target,
        TransportSecurity.insecure(),
        shutdown_timeout=get_shutdown_timeout(),
    ) as channel:
        client = GreeterClient(channel, timeout=get_call_timeout())
        client.greet(args.name, args.first_name, args.cin)


if __name__ == "__main__":
    main()

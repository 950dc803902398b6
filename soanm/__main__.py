"""soanm entry point.

Usage::

    python -m soanm sponsor [PATH] [--starting-stage N] [--passphrase-length N]
    python -m soanm enroll CODE
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from soanm import __version__
from soanm.channel import connect_with_code, connect_without_code
from soanm.config import SessionConfig
from soanm.enroll import EnrollRunner
from soanm.errors import SoanmError
from soanm.sponsor import StageRunner

_LEVELS = [logging.CRITICAL, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
_DEFAULT_LEVEL_INDEX = 2  # WARNING


def _non_negative(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or greater, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soanm",
        description="Provision a device by running paired stage programs over a one-time code",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More output per occurrence",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="count",
        default=0,
        help="Less output per occurrence",
    )
    parser.add_argument(
        "--config", "-c",
        metavar="PATH",
        default=None,
        help="Path to a session config.json",
    )
    parser.add_argument(
        "--relay-url",
        default=None,
        help="Mailbox relay URL (overrides config and SOANM_RELAY_URL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sponsor_p = sub.add_parser("sponsor", help="Initiate an enrollment")
    sponsor_p.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory holding enroll/, sponsor/ and results/ (default: .)",
    )
    sponsor_p.add_argument(
        "--starting-stage", "-s",
        type=_non_negative,
        default=0,
        metavar="N",
        help="Skip the first N sponsor stages entirely (no run, receive or result)",
    )
    sponsor_p.add_argument(
        "--passphrase-length", "-p",
        type=int,
        default=None,
        metavar="N",
        help="Number of words in the session code (default: 16)",
    )

    enroll_p = sub.add_parser(
        "enroll", help="Enroll this device, receiving configuration from a sponsor"
    )
    enroll_p.add_argument("code", help="Session code shown by the sponsor")

    return parser


def _log_level(verbose: int, quiet: int) -> int:
    index = _DEFAULT_LEVEL_INDEX + verbose - quiet
    return _LEVELS[max(0, min(index, len(_LEVELS) - 1))]


def _load_config(args: argparse.Namespace) -> SessionConfig:
    config = SessionConfig.load(args.config) if args.config else SessionConfig.from_env()
    if args.relay_url:
        config.relay_url = args.relay_url
    if getattr(args, "passphrase_length", None):
        config.passphrase_length = args.passphrase_length
    return config


async def sponsor(base_dir: Path, starting_stage: int, config: SessionConfig) -> None:
    code, pending = await connect_without_code(config.passphrase_length, config)
    print("On the enrollee, run:\n", file=sys.stderr)
    print(f"    soanm enroll {code}\n", file=sys.stderr)
    channel = await pending.wait()
    async with channel:
        runner = StageRunner(channel, base_dir, starting_stage=starting_stage, config=config)
        await runner.run()


async def enroll(code: str, config: SessionConfig) -> None:
    channel = await connect_with_code(code, config)
    async with channel:
        await EnrollRunner(channel).run()


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(args.verbose, args.quiet),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    config = _load_config(args)

    try:
        if args.command == "sponsor":
            asyncio.run(sponsor(Path(args.path), args.starting_stage, config))
        else:
            asyncio.run(enroll(args.code, config))
    except KeyboardInterrupt:
        print("\n\nEnrollment cancelled.", file=sys.stderr)
        sys.exit(1)
    except (SoanmError, OSError, ValueError) as exc:
        print(f"Error: {exc!r}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Command-line interface.

    echo "secret" | enstash          -> prints <uuid>:<key>
    enstash "API_KEY=abc123"         -> prints <uuid>:<key>
    destash "<uuid>:<key>"           -> prints the secret, once
    unstash "<uuid>[:<key>]"         -> deletes it unread

The same commands are available as `stasher enstash|destash|unstash`.

Exit codes: 0 success, 1 failure, 2 invalid input, 3 not found,
4 expired or consumed, 5 network or timeout, 6 decryption failure.
"""

import argparse
import logging
import signal as signals
import sys
import threading

from stasher import __version__
from stasher.cancel import INTERRUPTED, CancelToken
from stasher.config import load_config
from stasher.envelope import wipe
from stasher.errors import ExitCode, StashError
from stasher.ingest import read_secret, secret_from_args
from stasher.stash import Stasher

logger = logging.getLogger(__name__)

COMMANDS = {
    "enstash": "Encrypt and upload a one-time secret",
    "destash": "Retrieve and decrypt a one-time secret",
    "unstash": "Delete a one-time secret before it is accessed",
}

EPILOGS = {
    "enstash": 'examples:\n  echo "secret" | enstash\n  enstash "API_KEY=abc123"',
    "destash": 'examples:\n  destash "a1b2c3d4-e5f6-4890-abcd-ef1234567890:base64key..."',
    "unstash": (
        'examples:\n  unstash "a1b2c3d4-e5f6-4890-abcd-ef1234567890"\n'
        '  unstash "a1b2c3d4-e5f6-4890-abcd-ef1234567890:base64key..."'
    ),
}


def _add_arguments(parser: argparse.ArgumentParser, command: str) -> None:
    parser.add_argument("-v", "--verbose", action="store_true", help="log progress to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    if command == "enstash":
        parser.add_argument(
            "secret", nargs="*",
            help="secret words (read from stdin when omitted)",
        )
    elif command == "destash":
        parser.add_argument("token", help="stash token in the format uuid:base64key")
    else:
        parser.add_argument("token", help="stash uuid or full token uuid:base64key")


def build_parser(command: str = None) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Args:
        command: Build the standalone parser for one command (enstash,
            destash, unstash). When None, build `stasher` with subcommands.
    """
    formatter = argparse.RawDescriptionHelpFormatter
    if command is not None:
        parser = argparse.ArgumentParser(
            prog=command, description=COMMANDS[command],
            epilog=EPILOGS[command], formatter_class=formatter,
        )
        _add_arguments(parser, command)
        parser.set_defaults(command=command)
        return parser

    parser = argparse.ArgumentParser(prog="stasher", description="One-time secret sharing.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, description in COMMANDS.items():
        sub = subparsers.add_parser(
            name, help=description, description=description,
            epilog=EPILOGS[name], formatter_class=formatter,
        )
        _add_arguments(sub, name)
    return parser


def _emit(stream, data: bytes) -> None:
    getattr(stream, "buffer", stream).write(data)
    stream.flush()


def run_enstash(args, stasher: Stasher, token: CancelToken, stdin, stdout) -> None:
    if args.secret:
        secret = secret_from_args(args.secret, stasher.config.max_secret_size)
    else:
        secret = read_secret(
            stdin,
            limit=stasher.config.max_secret_size,
            idle_timeout=stasher.config.stdin_timeout,
            signal=token,
        )
    try:
        stash_token = stasher.enstash(secret, signal=token)
    finally:
        wipe(secret)
    _emit(stdout, stash_token.encode("ascii") + b"\n")


def run_destash(args, stasher: Stasher, token: CancelToken, stdin, stdout) -> None:
    plaintext = stasher.destash(args.token, signal=token)
    try:
        _emit(stdout, plaintext)
        _emit(stdout, b"\n")
    finally:
        wipe(plaintext)


def run_unstash(args, stasher: Stasher, token: CancelToken, stdin, stdout) -> None:
    deleted = stasher.unstash(args.token, signal=token)
    _emit(stdout, f"Stash {deleted} has been permanently deleted.\n".encode("utf-8"))


RUNNERS = {
    "enstash": run_enstash,
    "destash": run_destash,
    "unstash": run_unstash,
}


def main(argv: list[str] = None, command: str = None, stasher: Stasher = None,
         stdin=None, stdout=None, stderr=None) -> int:
    """
    Run a command and return its exit code.

    Args:
        argv: Arguments (without the program name). Defaults to sys.argv[1:].
        command: Run as the standalone `command` tool instead of `stasher`.
        stasher: Client to use. Built from load_config() when omitted.
        stdin / stdout / stderr: Streams, defaulting to the sys ones.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    args = build_parser(command).parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=stderr,
    )

    token = CancelToken()
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signals.signal(signals.SIGINT, lambda signum, frame: token.cancel(INTERRUPTED))

    try:
        stasher = stasher or Stasher.from_config(load_config())
        RUNNERS[args.command](args, stasher, token, stdin, stdout)
        return ExitCode.SUCCESS
    except StashError as e:
        logger.debug("%s failed: %s", args.command, type(e).__name__)
        print(str(e), file=stderr)
        return e.exit_code
    except Exception:
        logger.exception("Unexpected error")
        print("Operation failed. Please try again.", file=stderr)
        return ExitCode.FAILURE
    finally:
        if previous is not None:
            signals.signal(signals.SIGINT, previous)


def enstash_main() -> None:
    sys.exit(main(command="enstash"))


def destash_main() -> None:
    sys.exit(main(command="destash"))


def unstash_main() -> None:
    sys.exit(main(command="unstash"))


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import errno
import os
import sys
from functools import wraps
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from flow.record import RecordPrinter, RecordStreamWriter, RecordWriter

from dissect.execution.helpers import config
from dissect.execution.tools.logging import configure_logging

if TYPE_CHECKING:
    from flow.record.adapter import AbstractWriter


def configure_generic_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", type=Path, help=f"path to look for a {config.CONFIG_NAME} file")
    parser.add_argument("-w", "--workers", type=int, help="number of artifacts to decode in parallel")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase output verbosity")
    parser.add_argument("--version", action="store_true", help="print version")
    parser.add_argument("-q", "--quiet", action="store_true", help="do not output logging information")
    parser.add_argument("-j", "--json", action="store_true", help="output records as JSON lines")
    parser.add_argument("-s", "--strings", action="store_true", help="print records as text")


def process_generic_arguments(args: argparse.Namespace, **overrides: Any) -> dict[str, Any]:
    """Configure logging, handle ``--version`` and return the merged settings.

    The config file is searched from ``--config``, or else from the current directory. Command line ``overrides``
    that are not ``None`` take precedence over the config file.
    """
    configure_logging(args.verbose, args.quiet, as_plain_text=True)

    if args.version:
        try:
            print("dissect.execution version " + version("dissect.execution"))
        except PackageNotFoundError:
            print("unable to determine version")
        sys.exit(0)

    loaded = config.load(args.config or Path.cwd())
    return config.settings(loaded, WORKERS=args.workers, **overrides)


def record_output(strings: bool = False, json: bool = False) -> AbstractWriter:
    if json:
        return RecordWriter("jsonfile://-")

    fp = sys.stdout.buffer

    if strings or fp.isatty():
        return RecordPrinter(fp)

    return RecordStreamWriter(fp)


def catch_sigpipe(func: Callable) -> Callable:
    """Catches ``KeyboardInterrupt`` and ``BrokenPipeError`` (``OSError 22`` on Windows)."""

    @wraps(func)
    def wrapper(*args, **kwargs) -> int:
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            print("Aborted!", file=sys.stderr)
            return 1
        except OSError as e:
            # Only catch BrokenPipeError or OSError 22
            if e.errno in (errno.EPIPE, errno.EINVAL):
                devnull = os.open(os.devnull, os.O_WRONLY)
                os.dup2(devnull, sys.stdout.fileno())
                return 1
            # Raise other exceptions
            raise

    return wrapper

#!/usr/bin/env python
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dissect.execution.collect import iter_files, iter_lnk, iter_prefetch, iter_task_actions
from dissect.execution.exceptions import ConfigError, Error
from dissect.execution.helpers.regutil import iter_task_cache
from dissect.execution.records import from_prefetch, from_shell_link, from_task_action
from dissect.execution.tasks import TaskCacheEntry
from dissect.execution.tools.utils import (
    catch_sigpipe,
    configure_generic_arguments,
    process_generic_arguments,
    record_output,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from flow.record import Record

log = logging.getLogger(__name__)
logging.lastResort = None
logging.raiseExceptions = False


def iter_hive_entries(hives: list[Path]) -> Iterator[TaskCacheEntry]:
    for hive in hives:
        try:
            with hive.open("rb") as fh:
                yield from iter_task_cache(fh)
        except (Error, OSError) as e:
            log.error("Failed to read scheduled tasks from hive %s: %s", hive, e)  # noqa: TRY400
            log.debug("", exc_info=e)


def iter_action_files(paths: list[Path]) -> Iterator[TaskCacheEntry]:
    for path in paths:
        try:
            yield TaskCacheEntry(task_id=path.name, actions=path.read_bytes())
        except OSError as e:
            log.error("Failed to read %s: %s", path, e)  # noqa: TRY400


def iter_records(args: argparse.Namespace, settings: dict[str, Any]) -> Iterator[Record]:
    workers = settings["WORKERS"]

    for path, entry in iter_prefetch(iter_files(args.paths, ".pf"), workers=workers):
        yield from_prefetch(entry, source=path)

    for path, entry in iter_lnk(
        iter_files(args.paths, ".lnk"),
        codepage=settings["LNK_CODEPAGE"],
        max_size=settings["MAX_LNK_SIZE"],
        max_chars=settings["MAX_PATH_CHARS"],
        workers=workers,
    ):
        yield from_shell_link(entry, source=path)

    for source, entries in (("hive", iter_hive_entries(args.hive)), ("file", iter_action_files(args.actions))):
        for task, action in iter_task_actions(entries, workers=workers):
            name = task.path.rpartition("\\")[2] if task.path else None
            yield from_task_action(action, source=task.path or task.task_id, name=name)


@catch_sigpipe
def main() -> int:
    help_formatter = argparse.ArgumentDefaultsHelpFormatter
    parser = argparse.ArgumentParser(
        description="dump evidence of execution from Prefetch, Shell Link and scheduled task artifacts",
        fromfile_prefix_chars="@",
        formatter_class=help_formatter,
    )
    parser.add_argument("paths", metavar="PATH", nargs="*", type=Path, help="Prefetch and .lnk files or directories")
    parser.add_argument("--hive", action="append", type=Path, default=[], help="SOFTWARE hive to read tasks from")
    parser.add_argument(
        "--actions", action="append", type=Path, default=[], help="file holding a raw task Actions value"
    )
    parser.add_argument("--codepage", help="code page of narrow shell link strings")
    parser.add_argument("--max-lnk-size", type=int, help="skip shell links larger than this many bytes")
    configure_generic_arguments(parser)

    args = parser.parse_args()

    try:
        settings = process_generic_arguments(args, LNK_CODEPAGE=args.codepage, MAX_LNK_SIZE=args.max_lnk_size)
    except ConfigError as e:
        log.error(e)  # noqa: TRY400
        return 1

    if not (args.paths or args.hive or args.actions):
        parser.error("no artifacts given")

    writer = record_output(args.strings, args.json)
    try:
        for record in iter_records(args, settings):
            writer.write(record)
    finally:
        writer.flush()

    return 0


if __name__ == "__main__":
    main()

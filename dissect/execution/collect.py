from __future__ import annotations

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Callable, TypeVar

from dissect.execution.exceptions import DecodeError
from dissect.execution.helpers.cursor import MAX_PATH_CHARS
from dissect.execution.helpers.logging import ArtifactLogAdapter, get_logger
from dissect.execution.lnk import MAX_LNK_SIZE, ShellLinkTarget, decode_shell_link
from dissect.execution.prefetch import PrefetchRecord, decode_prefetch
from dissect.execution.tasks import RUN_AS_AUTHOR, ScheduledTaskAction, TaskCacheEntry, decode_task_action

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

log = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def iter_files(paths: Iterable[Path | str], suffix: str) -> Iterator[Path]:
    """Yield the given files and every file below the given directories that ends with ``suffix``."""
    suffix = suffix.lower()
    for path in map(Path, paths):
        if path.is_dir():
            yield from sorted(entry for entry in path.rglob("*") if entry.is_file() and entry.suffix.lower() == suffix)
        elif path.suffix.lower() == suffix:
            yield path


def decode_prefetch_file(path: Path) -> PrefetchRecord:
    record = decode_prefetch(path.read_bytes())

    # Prefetch files are named EXECUTABLE-HASH.pf
    _, _, file_hash = path.stem.rpartition("-")
    if len(file_hash) == 8 and file_hash.upper() != record.hash:
        log.warning("%s: header hash %s does not match the file name", path, record.hash)

    return record


def resolve_run_as(action: ScheduledTaskAction, author: str | None) -> ScheduledTaskAction:
    """Replace the ``Author`` run-as placeholder with the task's ``Author`` registry value."""
    if action.run_as == RUN_AS_AUTHOR and author:
        return dataclasses.replace(action, run_as=author)
    return action


def decode_task_entry(entry: TaskCacheEntry) -> ScheduledTaskAction:
    return resolve_run_as(decode_task_action(entry.actions), entry.author)


def decode_all(
    func: Callable[[T], R],
    items: Iterable[T],
    describe: Callable[[T], str] = str,
    workers: int = 1,
) -> Iterator[tuple[T, R]]:
    """Decode every item with ``func``, skipping the ones that fail.

    Decoders share no state, so with ``workers`` above one the items are spread over a thread pool. Results are
    yielded in input order either way.
    """

    def safe_decode(item: T) -> tuple[T, R | None]:
        item_log = ArtifactLogAdapter(log, {"artifact": describe(item)})
        try:
            return item, func(item)
        except (DecodeError, OSError) as e:
            item_log.warning("Failed to decode: %s", e)
            item_log.debug("", exc_info=e)
            return item, None

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(safe_decode, items))
    else:
        results = map(safe_decode, items)

    for item, result in results:
        if result is not None:
            yield item, result


def iter_prefetch(paths: Iterable[Path], workers: int = 1) -> Iterator[tuple[Path, PrefetchRecord]]:
    yield from decode_all(decode_prefetch_file, paths, workers=workers)


def iter_lnk(
    paths: Iterable[Path],
    codepage: str = "cp1252",
    max_size: int = MAX_LNK_SIZE,
    max_chars: int = MAX_PATH_CHARS,
    workers: int = 1,
) -> Iterator[tuple[Path, ShellLinkTarget]]:
    def decode(path: Path) -> ShellLinkTarget:
        return decode_shell_link(path.read_bytes(), codepage=codepage, max_size=max_size, max_chars=max_chars)

    yield from decode_all(decode, paths, workers=workers)


def iter_task_actions(
    entries: Iterable[TaskCacheEntry], workers: int = 1
) -> Iterator[tuple[TaskCacheEntry, ScheduledTaskAction]]:
    yield from decode_all(decode_task_entry, entries, describe=lambda entry: entry.task_id, workers=workers)

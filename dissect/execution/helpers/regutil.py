from __future__ import annotations

import logging
from typing import TYPE_CHECKING, BinaryIO

from dissect.regf import regf

from dissect.execution.exceptions import RegistryKeyNotFoundError
from dissect.execution.tasks import TaskCacheEntry

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

# Relative to the root of a SOFTWARE hive
TASK_CACHE_KEY = "Microsoft\\Windows NT\\CurrentVersion\\Schedule\\TaskCache\\Tasks"


def _string_value(key: regf.RegistryKey, name: str) -> str | None:
    try:
        value = key.value(name).value
    except regf.RegistryValueNotFoundError:
        return None
    return value if isinstance(value, str) else None


def iter_task_cache(fh: BinaryIO) -> Iterator[TaskCacheEntry]:
    """Yield every scheduled task in the TaskCache of an offline SOFTWARE hive.

    Tasks without a binary ``Actions`` value, such as those registered by Windows 7 and earlier, are skipped.

    Raises:
        RegistryKeyNotFoundError: If the hive has no TaskCache.
    """
    hive = regf.RegistryHive(fh)

    try:
        tasks = hive.open(TASK_CACHE_KEY)
    except regf.RegistryKeyNotFoundError as e:
        raise RegistryKeyNotFoundError(TASK_CACHE_KEY, cause=e)

    for key in tasks.subkeys():
        try:
            actions = key.value("Actions").value
        except regf.RegistryValueNotFoundError:
            log.debug("Task %s has no Actions value", key.name)
            continue

        if not isinstance(actions, bytes):
            log.warning("Task %s has a non-binary Actions value", key.name)
            continue

        yield TaskCacheEntry(
            task_id=key.name,
            actions=actions,
            path=_string_value(key, "Path"),
            author=_string_value(key, "Author"),
        )

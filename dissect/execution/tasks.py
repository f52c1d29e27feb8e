from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dissect.execution.exceptions import (
    TruncatedBufferError,
    UnimplementedLayoutError,
    UnsupportedVersionError,
)
from dissect.execution.helpers.cursor import ByteCursor
from dissect.execution.helpers.logging import get_logger
from dissect.execution.helpers.text import decode_text

log = get_logger(__name__)

# Placeholder principal, the real one is stored in the sibling Author value
RUN_AS_AUTHOR = "Author"
COM_HANDLER_COMMAND = "(Windows Internal COM)"


class ExecType(Enum):
    EXECUTABLE = b"ff"
    OPAQUE_COM_HANDLER = b"ww"
    UNKNOWN = None


@dataclass(frozen=True)
class ScheduledTaskAction:
    version: int
    run_as: str
    exec_type: ExecType
    command: str = ""
    arguments: str = ""
    working_dir: str | None = None

    @property
    def command_line(self) -> str:
        return f"{self.command} {self.arguments}" if self.arguments else self.command


@dataclass(frozen=True)
class TaskCacheEntry:
    """A task from the ``Schedule\\TaskCache\\Tasks`` registry key, with its raw ``Actions`` value."""

    task_id: str
    actions: bytes
    path: str | None = None
    author: str | None = None


def decode_task_action(data: bytes) -> ScheduledTaskAction:
    """Decode the first action of a scheduled task ``Actions`` registry value.

    Layout of version 3, as observed on Windows 10 and later::

        uint8   version
        uint8   padding
        uint32  run_as_size
        char    run_as[run_as_size]         UTF-16, sometimes narrow
        char    exec_type[2]                "ff" executable, "ww" COM handler
        -- executable only --
        uint32  unknown                     zero
        uint32  command_size
        char    command[command_size]
        uint32  arguments_size              optional
        char    arguments[arguments_size]
        uint32  working_dir_size            optional, inferred
        char    working_dir[working_dir_size]

    An ``Author`` run-as value is a placeholder that only the caller can resolve.

    Raises:
        UnimplementedLayoutError: For version 1 values, whose layout is not known.
        UnsupportedVersionError: For any other version than 1 or 3.
        TruncatedBufferError: If the run-as principal or the command is cut short.
    """
    cursor = ByteCursor(data)
    version = cursor.uint8()

    if version == 1:
        raise UnimplementedLayoutError("Version 1 scheduled task actions are not supported")

    if version != 3:
        raise UnsupportedVersionError(f"Unsupported scheduled task actions version: {version}")

    cursor.skip(1)
    run_as = _read_text(cursor)

    raw_type = cursor.read(2)
    try:
        exec_type = ExecType(raw_type)
    except ValueError:
        log.warning("Unknown scheduled task action type: %s", raw_type.hex())
        return ScheduledTaskAction(version=version, run_as=run_as, exec_type=ExecType.UNKNOWN)

    if exec_type is ExecType.OPAQUE_COM_HANDLER:
        return ScheduledTaskAction(
            version=version,
            run_as=run_as,
            exec_type=exec_type,
            command=COM_HANDLER_COMMAND,
        )

    unknown = cursor.read(4)
    if unknown != b"\x00\x00\x00\x00":
        log.warning("Unexpected bytes in scheduled task action: %s, expected zeroes", unknown.hex())

    command = _read_text(cursor)
    arguments = _read_optional_text(cursor, "arguments") or ""
    working_dir = _read_optional_text(cursor, "working directory")

    return ScheduledTaskAction(
        version=version,
        run_as=run_as,
        exec_type=exec_type,
        command=command,
        arguments=arguments,
        working_dir=working_dir,
    )


def _read_text(cursor: ByteCursor) -> str:
    data = cursor.read_prefixed(4, 1)
    return decode_text(data, len(data))


def _read_optional_text(cursor: ByteCursor, name: str) -> str | None:
    # Trailing padding of varying length follows the last field, so a field is only present if its
    # length prefix fits and the length it declares fits too
    if cursor.remaining() < 4:
        return None

    probe = cursor.copy()
    try:
        value = _read_text(probe)
    except TruncatedBufferError as e:
        log.debug("No scheduled task action %s: %s", name, e)
        return None

    cursor.seek(probe.offset)
    return value or None

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING

from dissect.cstruct import cstruct

from dissect.execution.compression import decompress, is_compressed
from dissect.execution.exceptions import (
    StructuralMismatchError,
    TruncatedBufferError,
    UnsupportedVersionError,
)
from dissect.execution.helpers.cursor import ByteCursor
from dissect.execution.helpers.logging import get_logger
from dissect.execution.helpers.ts import nt_timestamp

if TYPE_CHECKING:
    from datetime import datetime

log = get_logger(__name__)

prefetch_def = """
struct PREFETCH_HEADER {
    uint32  version;
    char    signature[4];
    uint32  unknown;
    uint32  size;
    char    name[60];
    uint32  hash;
    uint32  flags;
};

struct FILE_INFORMATION {
    uint32  metrics_array_offset;
    uint32  number_of_file_metrics_entries;
    uint32  trace_chain_array_offset;
    uint32  number_of_trace_chain_array_entries;
    uint32  filename_strings_offset;
    uint32  filename_strings_size;
    uint32  volumes_information_offset;
    uint32  number_of_volumes;
    uint32  volumes_information_size;
};

struct VOLUME_INFORMATION {
    uint32  device_path_offset;
    uint32  device_path_number_of_characters;
    uint64  creation_time;
    uint32  serial_number;
    uint32  file_reference_offset;
    uint32  file_reference_size;
    uint32  directory_strings_array_offset;
    uint32  number_of_directory_strings;
};
"""
c_prefetch = cstruct().load(prefetch_def)

PREFETCH_SIGNATURE = b"SCCA"
HEADER_SIZE = len(c_prefetch.PREFETCH_HEADER)


class PrefetchVersion(IntEnum):
    WINXP = 17
    WINVISTA_7 = 23
    WIN8 = 26
    WIN10 = 30
    WIN11 = 31


@dataclass(frozen=True)
class PrefetchLayout:
    """Version specific layout of the file information region that follows the common header.

    All offsets are relative to the start of the file information region.
    """

    file_information_size: int
    volume_record_size: int
    metrics_entry_size: int
    trace_chain_entry_size: int
    last_run_offset: int
    last_run_count: int
    run_count_offset: int
    # Later Windows 10 builds moved the run count 8 bytes back. The byte at late_probe_offset is zero
    # in the earlier layout and part of a non-zero field in the later one.
    late_run_count_offset: int | None = None
    late_probe_offset: int | None = None


PREFETCH_LAYOUTS = {
    PrefetchVersion.WINXP: PrefetchLayout(
        file_information_size=68,
        volume_record_size=40,
        metrics_entry_size=20,
        trace_chain_entry_size=12,
        last_run_offset=36,
        last_run_count=1,
        run_count_offset=60,
    ),
    PrefetchVersion.WINVISTA_7: PrefetchLayout(
        file_information_size=156,
        volume_record_size=104,
        metrics_entry_size=32,
        trace_chain_entry_size=12,
        last_run_offset=44,
        last_run_count=1,
        run_count_offset=68,
    ),
    PrefetchVersion.WIN8: PrefetchLayout(
        file_information_size=224,
        volume_record_size=104,
        metrics_entry_size=32,
        trace_chain_entry_size=12,
        last_run_offset=44,
        last_run_count=8,
        run_count_offset=124,
    ),
    PrefetchVersion.WIN10: PrefetchLayout(
        file_information_size=224,
        volume_record_size=96,
        metrics_entry_size=32,
        trace_chain_entry_size=8,
        last_run_offset=44,
        last_run_count=8,
        run_count_offset=124,
        late_run_count_offset=116,
        late_probe_offset=120,
    ),
}
PREFETCH_LAYOUTS[PrefetchVersion.WIN11] = PREFETCH_LAYOUTS[PrefetchVersion.WIN10]


@dataclass(frozen=True)
class VolumeReference:
    device_name: str
    serial: str
    creation_time: int
    directory_names: list[str] = field(default_factory=list)

    @property
    def created(self) -> datetime | None:
        return nt_timestamp(self.creation_time)


@dataclass(frozen=True)
class PrefetchRecord:
    version: PrefetchVersion
    declared_size: int
    executable: str
    hash: str
    run_count: int
    last_run_times: list[int] = field(default_factory=list)
    referenced_modules: list[str] = field(default_factory=list)
    volumes: list[VolumeReference] = field(default_factory=list)

    @property
    def latest_timestamp(self) -> datetime | None:
        """Get the latest execution timestamp inside the prefetch file."""
        return nt_timestamp(self.last_run_times[0]) if self.last_run_times else None

    @property
    def previous_timestamps(self) -> list[datetime]:
        """Get the previous timestamps from the prefetch file."""
        return [ts for ts in map(nt_timestamp, self.last_run_times[1:]) if ts]


def decode_prefetch(data: bytes) -> PrefetchRecord:
    """Decode a Prefetch (``.pf``) file.

    Compressed (``MAM``) containers are decompressed first. Structural problems with the header abort the decode;
    problems within the filename strings block or a single volume are logged and leave that part out of the record.

    Args:
        data: The full contents of the Prefetch file.

    Raises:
        UnsupportedVersionError: If the format version is unknown.
        StructuralMismatchError: If the ``SCCA`` signature is missing.
        TruncatedBufferError: If the header or file information region is cut short.
    """
    if is_compressed(data):
        data = decompress(data)

    cursor = ByteCursor(data)
    header = cursor.read_struct(c_prefetch.PREFETCH_HEADER)

    try:
        version = PrefetchVersion(header.version)
    except ValueError:
        raise UnsupportedVersionError(f"Unsupported prefetch version: {header.version}")

    if header.signature != PREFETCH_SIGNATURE:
        raise StructuralMismatchError(f"Invalid prefetch signature: {header.signature!r}")

    if header.size != len(data):
        log.warning("Prefetch header declares size %d, but buffer is %d bytes", header.size, len(data))

    layout = PREFETCH_LAYOUTS[version]
    info_cursor = cursor.slice(HEADER_SIZE, layout.file_information_size)
    info = info_cursor.read_struct(c_prefetch.FILE_INFORMATION)

    _validate_tables(cursor, info, layout)

    return PrefetchRecord(
        version=version,
        declared_size=header.size,
        executable=_read_executable(header.name),
        hash=f"{header.hash:08X}",
        run_count=_read_run_count(info_cursor, layout),
        last_run_times=_read_last_run_times(info_cursor, layout),
        referenced_modules=_read_modules(cursor, info),
        volumes=_read_volumes(cursor, info, layout),
    )


def _read_executable(raw: bytes) -> str:
    max_chars = len(raw) // 2
    name = ByteCursor(raw).wstring(max_chars)

    if len(name) == max_chars:
        log.warning("Executable name is not nul-terminated: %r", name)

    return name


def _read_last_run_times(info_cursor: ByteCursor, layout: PrefetchLayout) -> list[int]:
    timestamps = []
    for idx in range(layout.last_run_count):
        timestamp = info_cursor.uint64(layout.last_run_offset + idx * 8)
        # Unused slots are zero
        if timestamp:
            timestamps.append(timestamp)
    return timestamps


def _read_run_count(info_cursor: ByteCursor, layout: PrefetchLayout) -> int:
    offset = layout.run_count_offset

    if layout.late_probe_offset is not None and info_cursor.uint8(layout.late_probe_offset) != 0:
        log.trace(
            "Non-zero byte at %#x, reading run count at %#x", layout.late_probe_offset, layout.late_run_count_offset
        )
        offset = layout.late_run_count_offset

    return info_cursor.uint32(offset)


def _validate_tables(cursor: ByteCursor, info: c_prefetch.FILE_INFORMATION, layout: PrefetchLayout) -> None:
    tables = (
        ("file metrics", info.metrics_array_offset, info.number_of_file_metrics_entries * layout.metrics_entry_size),
        (
            "trace chains",
            info.trace_chain_array_offset,
            info.number_of_trace_chain_array_entries * layout.trace_chain_entry_size,
        ),
    )

    for name, offset, size in tables:
        try:
            cursor.slice(offset, size)
        except TruncatedBufferError as e:
            log.warning("Prefetch %s table escapes the buffer: %s", name, e)


def _read_modules(cursor: ByteCursor, info: c_prefetch.FILE_INFORMATION) -> list[str]:
    try:
        block = cursor.slice(info.filename_strings_offset, info.filename_strings_size)
    except TruncatedBufferError as e:
        log.warning("Prefetch filename strings block escapes the buffer: %s", e)
        return []

    modules = []
    while block.remaining() >= 2:
        # A string without terminator runs until the end of the block
        name = block.wstring(block.remaining() // 2)
        # Skip alignment padding
        if name:
            modules.append(name)

    return modules


def _read_volumes(
    cursor: ByteCursor, info: c_prefetch.FILE_INFORMATION, layout: PrefetchLayout
) -> list[VolumeReference]:
    try:
        block = cursor.slice(info.volumes_information_offset, info.volumes_information_size)
    except TruncatedBufferError as e:
        log.warning("Prefetch volume information block escapes the buffer: %s", e)
        return []

    count = info.number_of_volumes
    if count * layout.volume_record_size > len(block):
        count = len(block) // layout.volume_record_size
        log.warning("Prefetch declares %d volumes, only %d fit in the volume block", info.number_of_volumes, count)

    volumes = []
    for idx in range(count):
        try:
            volumes.append(_read_volume(block, idx * layout.volume_record_size))
        except TruncatedBufferError as e:  # noqa: PERF203
            log.warning("Skipping prefetch volume %d: %s", idx, e)

    return volumes


def _read_volume(block: ByteCursor, offset: int) -> VolumeReference:
    entry = block.read_struct(c_prefetch.VOLUME_INFORMATION, offset)
    device_name = block.wstring(entry.device_path_number_of_characters, entry.device_path_offset)

    directory_names = []
    dirs = block.copy()
    try:
        dirs.seek(entry.directory_strings_array_offset)
        for _ in range(entry.number_of_directory_strings):
            directory_names.append(dirs.lpwstring(2))
            # Each name is followed by a terminator that is not included in its length
            dirs.skip(min(2, dirs.remaining()))
    except TruncatedBufferError as e:
        log.warning(
            "Directory names of volume %s truncated after %d of %d entries: %s",
            device_name,
            len(directory_names),
            entry.number_of_directory_strings,
            e,
        )

    return VolumeReference(
        device_name=device_name,
        serial=f"{entry.serial_number:08x}",
        creation_time=entry.creation_time,
        directory_names=directory_names,
    )

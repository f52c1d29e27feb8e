from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import TYPE_CHECKING, Any, Callable

from dissect.cstruct import cstruct

from dissect.execution.exceptions import StructuralMismatchError, TruncatedBufferError
from dissect.execution.helpers.cursor import MAX_PATH_CHARS, ByteCursor
from dissect.execution.helpers.logging import get_logger
from dissect.execution.helpers.text import decode_narrow, decode_utf16, strip_nul
from dissect.execution.helpers.ts import nt_timestamp

if TYPE_CHECKING:
    from datetime import datetime

log = get_logger(__name__)

lnk_def = """
struct SHELL_LINK_HEADER {
    uint32  header_size;
    char    link_clsid[16];
    uint32  link_flags;
    uint32  file_attributes;
    uint64  creation_time;
    uint64  access_time;
    uint64  write_time;
    uint32  file_size;
    int32   icon_index;
    uint32  show_command;
    uint16  hotkey;
    uint16  reserved1;
    uint32  reserved2;
    uint32  reserved3;
};

struct LINK_INFO {
    uint32  link_info_size;
    uint32  link_info_header_size;
    uint32  link_info_flags;
    uint32  volume_id_offset;
    uint32  local_base_path_offset;
    uint32  common_network_relative_link_offset;
    uint32  common_path_suffix_offset;
};

struct VOLUME_ID {
    uint32  volume_id_size;
    uint32  drive_type;
    uint32  drive_serial_number;
    uint32  volume_label_offset;
};

struct COMMON_NETWORK_RELATIVE_LINK {
    uint32  common_network_relative_link_size;
    uint32  common_network_relative_link_flags;
    uint32  net_name_offset;
    uint32  device_name_offset;
    uint32  network_provider_type;
};
"""
c_lnk = cstruct().load(lnk_def)

HEADER_SIZE = 0x4C
# 00021401-0000-0000-C000-000000000046
LINK_CLSID = b"\x01\x14\x02\x00\x00\x00\x00\x00\xc0\x00\x00\x00\x00\x00\x00\x46"

# LinkInfo headers of at least this size carry the Unicode offsets
LINK_INFO_UNICODE_HEADER_SIZE = 0x24
# VolumeID label offset that redirects to the Unicode label offset
VOLUME_LABEL_UNICODE = 0x14
# CommonNetworkRelativeLink net name offsets beyond this carry the Unicode offsets
NETWORK_LINK_UNICODE_OFFSET = 0x14

MAX_LNK_SIZE = 1024 * 1024


class LinkFlags(IntFlag):
    HAS_LINK_TARGET_ID_LIST = 0x00000001
    HAS_LINK_INFO = 0x00000002
    HAS_NAME = 0x00000004
    HAS_RELATIVE_PATH = 0x00000008
    HAS_WORKING_DIR = 0x00000010
    HAS_ARGUMENTS = 0x00000020
    HAS_ICON_LOCATION = 0x00000040
    IS_UNICODE = 0x00000080
    FORCE_NO_LINK_INFO = 0x00000100
    HAS_EXP_STRING = 0x00000200
    RUN_IN_SEPARATE_PROCESS = 0x00000400
    HAS_DARWIN_ID = 0x00001000
    RUN_AS_USER = 0x00002000
    HAS_EXP_ICON = 0x00004000
    NO_PIDL_ALIAS = 0x00008000
    RUN_WITH_SHIM_LAYER = 0x00020000
    FORCE_NO_LINK_TRACK = 0x00040000
    ENABLE_TARGET_METADATA = 0x00080000
    DISABLE_LINK_PATH_TRACKING = 0x00100000
    DISABLE_KNOWN_FOLDER_TRACKING = 0x00200000
    DISABLE_KNOWN_FOLDER_ALIAS = 0x00400000
    ALLOW_LINK_TO_LINK = 0x00800000
    UNALIAS_ON_SAVE = 0x01000000
    PREFER_ENVIRONMENT_PATH = 0x02000000
    KEEP_LOCAL_ID_LIST_FOR_UNC_TARGET = 0x04000000


class FileAttributes(IntFlag):
    READONLY = 0x0001
    HIDDEN = 0x0002
    SYSTEM = 0x0004
    DIRECTORY = 0x0010
    ARCHIVE = 0x0020
    NORMAL = 0x0080
    TEMPORARY = 0x0100
    SPARSE_FILE = 0x0200
    REPARSE_POINT = 0x0400
    COMPRESSED = 0x0800
    OFFLINE = 0x1000
    NOT_CONTENT_INDEXED = 0x2000
    ENCRYPTED = 0x4000


class LinkInfoFlags(IntFlag):
    VOLUME_ID_AND_LOCAL_BASE_PATH = 0x1
    COMMON_NETWORK_RELATIVE_LINK_AND_PATH_SUFFIX = 0x2


class NetworkLinkFlags(IntFlag):
    VALID_DEVICE = 0x1
    VALID_NET_TYPE = 0x2


class ShowCommand(IntEnum):
    NORMAL = 1
    MAXIMIZED = 3
    MINNOACTIVE = 7


class DriveType(IntEnum):
    UNKNOWN = 0
    NO_ROOT_DIR = 1
    REMOVABLE = 2
    FIXED = 3
    REMOTE = 4
    CDROM = 5
    RAMDISK = 6


# StringData structures follow the LinkInfo in this order, each present only if its flag is set
STRING_DATA_FIELDS = (
    (LinkFlags.HAS_NAME, "name"),
    (LinkFlags.HAS_RELATIVE_PATH, "relative_path"),
    (LinkFlags.HAS_WORKING_DIR, "working_dir"),
    (LinkFlags.HAS_ARGUMENTS, "arguments"),
    (LinkFlags.HAS_ICON_LOCATION, "icon_location"),
)


@dataclass(frozen=True)
class VolumeId:
    drive_type: int
    serial: str
    label: str | None = None


@dataclass(frozen=True)
class LinkInfo:
    flags: LinkInfoFlags
    volume: VolumeId | None = None
    local_base_path: str | None = None
    common_path_suffix: str | None = None
    net_name: str | None = None
    device_name: str | None = None

    @property
    def full_path(self) -> str | None:
        """The target path, made from the local base path and the common path suffix."""
        if not self.local_base_path:
            return None
        return self.local_base_path + (self.common_path_suffix or "")


@dataclass(frozen=True)
class ShellLinkTarget:
    link_flags: LinkFlags
    file_attributes: FileAttributes
    creation_time: int
    access_time: int
    write_time: int
    file_size: int
    icon_index: int
    show_command: int
    hotkey: int
    id_list: bytes | None = None
    link_info: LinkInfo | None = None
    name: str = ""
    relative_path: str = ""
    working_dir: str = ""
    arguments: str = ""
    icon_location: str = ""
    extra_data_offset: int = HEADER_SIZE

    @property
    def show(self) -> ShowCommand:
        # Any other value is treated as SW_SHOWNORMAL
        try:
            return ShowCommand(self.show_command)
        except ValueError:
            return ShowCommand.NORMAL

    @property
    def target_path(self) -> str | None:
        """Best available path of the link target."""
        if self.link_info and self.link_info.full_path:
            return self.link_info.full_path
        return self.relative_path or None

    @property
    def target_mtime(self) -> datetime | None:
        return nt_timestamp(self.write_time)

    @property
    def target_atime(self) -> datetime | None:
        return nt_timestamp(self.access_time)

    @property
    def target_ctime(self) -> datetime | None:
        return nt_timestamp(self.creation_time)


def decode_shell_link(
    data: bytes,
    codepage: str = "cp1252",
    max_size: int = MAX_LNK_SIZE,
    max_chars: int = MAX_PATH_CHARS,
) -> ShellLinkTarget:
    """Decode a Shell Link (``.lnk``) file.

    The header is mandatory and validated strictly. The optional sections that follow are decoded in order; when
    one of them is cut short, decoding stops there and the sections read so far are returned.

    Trailing ExtraData blocks are not decoded, ``extra_data_offset`` of the result tells where they start.

    Args:
        data: The full contents of the ``.lnk`` file.
        codepage: The code page of narrow strings, used when the ``IS_UNICODE`` flag is not set.
        max_size: Inputs larger than this are refused.
        max_chars: Cap for nul-terminated strings in the LinkInfo structure.

    Raises:
        StructuralMismatchError: If the input is too large or the header size or class identifier is wrong.
        TruncatedBufferError: If the header is cut short.
    """
    if len(data) > max_size:
        raise StructuralMismatchError(f"Refusing shell link of {len(data)} bytes, the maximum is {max_size}")

    cursor = ByteCursor(data)
    header = cursor.read_struct(c_lnk.SHELL_LINK_HEADER)

    if header.header_size != HEADER_SIZE:
        raise StructuralMismatchError(f"Invalid shell link header size: {header.header_size:#x}")

    if header.link_clsid != LINK_CLSID:
        raise StructuralMismatchError(f"Invalid shell link class identifier: {header.link_clsid.hex()}")

    flags = LinkFlags(header.link_flags)
    fields: dict[str, Any] = {}

    try:
        if flags & LinkFlags.HAS_LINK_TARGET_ID_LIST:
            fields["id_list"] = _read_id_list(cursor)

        if flags & LinkFlags.HAS_LINK_INFO:
            fields["link_info"] = _read_link_info(cursor, codepage, max_chars)

        encoding = None if flags & LinkFlags.IS_UNICODE else codepage
        for flag, name in STRING_DATA_FIELDS:
            if flags & flag:
                fields[name] = _read_string_data(cursor, encoding)
    except TruncatedBufferError as e:
        log.warning("Shell link truncated at offset %#x, returning what was decoded: %s", cursor.offset, e)

    return ShellLinkTarget(
        link_flags=flags,
        file_attributes=FileAttributes(header.file_attributes),
        creation_time=header.creation_time,
        access_time=header.access_time,
        write_time=header.write_time,
        file_size=header.file_size,
        icon_index=header.icon_index,
        show_command=header.show_command,
        hotkey=header.hotkey,
        extra_data_offset=cursor.offset,
        **fields,
    )


def _read_id_list(cursor: ByteCursor) -> bytes:
    # The ItemIDs themselves are not interpreted, only skipped
    id_list = cursor.read_prefixed(2, 1)
    if len(id_list) < 2:
        log.warning("Shell link IDList of %d bytes cannot hold its terminator", len(id_list))
    return id_list


def _read_string_data(cursor: ByteCursor, encoding: str | None) -> str:
    if encoding is None:
        value = decode_utf16(cursor.read_prefixed(2, 2))
    else:
        value = decode_narrow(cursor.read_prefixed(2, 1), encoding)
    return strip_nul(value)


def _read_link_info(cursor: ByteCursor, codepage: str, max_chars: int) -> LinkInfo | None:
    size = cursor.uint32(cursor.offset)
    region = cursor.slice(cursor.offset, size)

    # Advance by the declared size, optional fields inside may have been skipped
    cursor.skip(size)

    try:
        return _parse_link_info(region, codepage, max_chars)
    except TruncatedBufferError as e:
        log.warning("Skipping shell link LinkInfo: %s", e)
        return None


def _optional(name: str, func: Callable[..., Any], *args) -> Any:
    try:
        return func(*args)
    except TruncatedBufferError as e:
        log.warning("Skipping shell link %s: %s", name, e)
        return None


def _read_path(region: ByteCursor, offset: int, unicode_offset: int, codepage: str, max_chars: int) -> str | None:
    if unicode_offset:
        return region.wstring(max_chars, unicode_offset)
    if offset:
        return region.cstring(max_chars, offset, codepage)
    return None


def _parse_link_info(region: ByteCursor, codepage: str, max_chars: int) -> LinkInfo:
    info = region.read_struct(c_lnk.LINK_INFO)
    flags = LinkInfoFlags(info.link_info_flags)

    local_base_path_offset_unicode = common_path_suffix_offset_unicode = 0
    if info.link_info_header_size >= LINK_INFO_UNICODE_HEADER_SIZE:
        local_base_path_offset_unicode = region.uint32()
        common_path_suffix_offset_unicode = region.uint32()

    volume = local_base_path = net_name = device_name = None

    if flags & LinkInfoFlags.VOLUME_ID_AND_LOCAL_BASE_PATH:
        if info.volume_id_offset:
            volume = _optional("VolumeID", _read_volume_id, region, info.volume_id_offset, codepage, max_chars)

        local_base_path = _optional(
            "LocalBasePath",
            _read_path,
            region,
            info.local_base_path_offset,
            local_base_path_offset_unicode,
            codepage,
            max_chars,
        )

    if flags & LinkInfoFlags.COMMON_NETWORK_RELATIVE_LINK_AND_PATH_SUFFIX and info.common_network_relative_link_offset:
        names = _optional(
            "CommonNetworkRelativeLink",
            _read_network_link,
            region,
            info.common_network_relative_link_offset,
            codepage,
            max_chars,
        )
        if names:
            net_name, device_name = names

    common_path_suffix = _optional(
        "CommonPathSuffix",
        _read_path,
        region,
        info.common_path_suffix_offset,
        common_path_suffix_offset_unicode,
        codepage,
        max_chars,
    )

    return LinkInfo(
        flags=flags,
        volume=volume,
        local_base_path=local_base_path,
        common_path_suffix=common_path_suffix,
        net_name=net_name,
        device_name=device_name,
    )


def _read_volume_id(region: ByteCursor, offset: int, codepage: str, max_chars: int) -> VolumeId:
    volume_id = region.read_struct(c_lnk.VOLUME_ID, offset)

    if volume_id.volume_label_offset == VOLUME_LABEL_UNICODE:
        label_offset = region.uint32(offset + len(c_lnk.VOLUME_ID))
        label = region.wstring(max_chars, offset + label_offset)
    else:
        label = region.cstring(max_chars, offset + volume_id.volume_label_offset, codepage)

    return VolumeId(
        drive_type=volume_id.drive_type,
        serial=f"{volume_id.drive_serial_number:08X}",
        label=label,
    )


def _read_network_link(region: ByteCursor, offset: int, codepage: str, max_chars: int) -> tuple[str, str | None]:
    link = region.read_struct(c_lnk.COMMON_NETWORK_RELATIVE_LINK, offset)
    flags = NetworkLinkFlags(link.common_network_relative_link_flags)

    net_name_offset_unicode = device_name_offset_unicode = 0
    if link.net_name_offset > NETWORK_LINK_UNICODE_OFFSET:
        base = offset + len(c_lnk.COMMON_NETWORK_RELATIVE_LINK)
        net_name_offset_unicode = region.uint32(base)
        device_name_offset_unicode = region.uint32(base + 4)

    net_name = _read_path(
        region,
        offset + link.net_name_offset,
        offset + net_name_offset_unicode if net_name_offset_unicode else 0,
        codepage,
        max_chars,
    )

    device_name = None
    if flags & NetworkLinkFlags.VALID_DEVICE:
        device_name = _read_path(
            region,
            offset + link.device_name_offset,
            offset + device_name_offset_unicode if device_name_offset_unicode else 0,
            codepage,
            max_chars,
        )

    return net_name or "", device_name

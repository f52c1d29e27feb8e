from __future__ import annotations

import struct
from datetime import datetime, timezone

import pytest

from dissect.execution.exceptions import StructuralMismatchError, TruncatedBufferError
from dissect.execution.lnk import (
    HEADER_SIZE,
    DriveType,
    FileAttributes,
    LinkFlags,
    LinkInfoFlags,
    ShowCommand,
    decode_shell_link,
)
from tests._utils import build_link_info, build_lnk, build_lnk_header, wide

# 2020-01-01 00:00:00 UTC
TS = 132223104000000000


def test_lnk_header_only() -> None:
    data = build_lnk(extra=b"", write_time=TS, file_size=27648, icon_index=-1, show_command=3, hotkey=0x0241)

    target = decode_shell_link(data)

    assert target.link_flags == LinkFlags.IS_UNICODE
    assert target.file_attributes == FileAttributes.ARCHIVE
    assert target.target_mtime == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert target.target_atime is None
    assert target.file_size == 27648
    assert target.icon_index == -1
    assert target.show == ShowCommand.MAXIMIZED
    assert target.hotkey == 0x0241
    assert target.id_list is None
    assert target.link_info is None
    assert target.name == target.relative_path == target.working_dir == target.arguments == ""
    assert target.extra_data_offset == HEADER_SIZE


def test_lnk_full() -> None:
    data = build_lnk(
        id_list=b"\x14\x00" + b"\x1f" * 18 + b"\x00\x00",
        link_info=build_link_info(local_base_path="C:\\Windows\\System32\\", common_path_suffix="calc.exe"),
        strings={
            "name": "Calculator",
            "relative_path": "..\\..\\Windows\\System32\\calc.exe",
            "working_dir": "C:\\Windows\\System32",
            "arguments": "/s",
            "icon_location": "%SystemRoot%\\System32\\calc.exe",
        },
    )

    target = decode_shell_link(data)

    assert target.id_list == b"\x14\x00" + b"\x1f" * 18 + b"\x00\x00"

    link_info = target.link_info
    assert link_info.flags == LinkInfoFlags.VOLUME_ID_AND_LOCAL_BASE_PATH
    assert link_info.volume.drive_type == DriveType.FIXED
    assert link_info.volume.serial == "1234ABCD"
    assert link_info.volume.label == "SYSTEM"
    assert link_info.local_base_path == "C:\\Windows\\System32\\"
    assert link_info.common_path_suffix == "calc.exe"
    assert link_info.full_path == "C:\\Windows\\System32\\calc.exe"

    assert target.name == "Calculator"
    assert target.relative_path == "..\\..\\Windows\\System32\\calc.exe"
    assert target.working_dir == "C:\\Windows\\System32"
    assert target.arguments == "/s"
    assert target.icon_location == "%SystemRoot%\\System32\\calc.exe"
    assert target.target_path == "C:\\Windows\\System32\\calc.exe"
    # The ExtraData terminal block is left alone
    assert target.extra_data_offset == len(data) - 4


def test_lnk_narrow_strings() -> None:
    data = build_lnk(strings={"name": "Caf\xe9", "arguments": "-x"}, unicode=False)

    target = decode_shell_link(data)

    assert target.name == "Café"
    assert target.arguments == "-x"


def test_lnk_narrow_strings_codepage() -> None:
    data = build_lnk_header(flags=LinkFlags.HAS_NAME) + b"\x02\x00\xcf\xf0"

    assert decode_shell_link(data, codepage="cp1251").name == "Пр"


def test_lnk_zero_length_name() -> None:
    data = build_lnk(strings={"name": "", "working_dir": "C:\\Temp"})

    target = decode_shell_link(data)

    assert target.name == ""
    assert target.working_dir == "C:\\Temp"


def test_lnk_relative_path_fallback() -> None:
    target = decode_shell_link(build_lnk(strings={"relative_path": ".\\tool.exe"}))

    assert target.target_path == ".\\tool.exe"


@pytest.mark.parametrize(
    "header",
    [
        build_lnk_header(header_size=0x50),
        build_lnk_header(clsid=b"\x00" * 16),
    ],
)
def test_lnk_invalid_header(header: bytes) -> None:
    with pytest.raises(StructuralMismatchError):
        decode_shell_link(header)


def test_lnk_truncated_header() -> None:
    with pytest.raises(TruncatedBufferError):
        decode_shell_link(build_lnk_header()[:40])


def test_lnk_too_large() -> None:
    data = build_lnk(extra=b"\x00" * 64)

    with pytest.raises(StructuralMismatchError):
        decode_shell_link(data, max_size=HEADER_SIZE)


def test_lnk_truncated_strings(caplog_warning: pytest.LogCaptureFixture) -> None:
    data = build_lnk(strings={"name": "Calculator", "arguments": "/s"}, extra=b"")

    target = decode_shell_link(data[:-2])

    assert target.name == "Calculator"
    assert target.arguments == ""
    assert "truncated" in caplog_warning.text


def test_lnk_link_info_advances_by_declared_size() -> None:
    link_info = bytearray(build_link_info())
    # Declare 8 bytes of trailing data the parser does not know about
    struct.pack_into("<I", link_info, 0, len(link_info) + 8)
    link_info += b"\xcc" * 8

    data = build_lnk(link_info=bytes(link_info), strings={"name": "calc"})
    target = decode_shell_link(data)

    assert target.link_info.local_base_path == "C:\\Windows\\System32\\calc.exe"
    assert target.name == "calc"


def test_lnk_link_info_unicode_path() -> None:
    header_size = 0x24
    local_base_path = wide("C:\\Users\\Public\\tool.exe")
    unicode_offset = header_size
    suffix_offset = unicode_offset + len(local_base_path)
    size = suffix_offset + 2

    link_info = (
        struct.pack("<IIIIIIIII", size, header_size, 0x1, 0, 0, 0, 0, unicode_offset, suffix_offset)
        + local_base_path
        + b"\x00\x00"
    )

    target = decode_shell_link(build_lnk(link_info=link_info))

    assert target.link_info.volume is None
    assert target.link_info.local_base_path == "C:\\Users\\Public\\tool.exe"
    assert target.link_info.common_path_suffix == ""


def test_lnk_network_link() -> None:
    header_size = 0x1C
    network = struct.pack("<IIIII", 0, 0x1, 0x14, 0x14 + len(b"\\\\server\\share\x00"), 0) + b"\\\\server\\share\x00Z:\x00"
    network = struct.pack("<I", len(network)) + network[4:]
    network_offset = header_size
    suffix_offset = network_offset + len(network)
    size = suffix_offset + len(b"docs\\report.exe\x00")

    link_info = (
        struct.pack("<IIIIIII", size, header_size, 0x2, 0, 0, network_offset, suffix_offset)
        + network
        + b"docs\\report.exe\x00"
    )

    target = decode_shell_link(build_lnk(link_info=link_info))

    assert target.link_info.net_name == "\\\\server\\share"
    assert target.link_info.device_name == "Z:"
    assert target.link_info.common_path_suffix == "docs\\report.exe"
    assert target.link_info.full_path is None


def test_lnk_unknown_show_command() -> None:
    target = decode_shell_link(build_lnk(show_command=5))

    assert target.show_command == 5
    assert target.show == ShowCommand.NORMAL


def test_lnk_out_of_range_timestamps() -> None:
    target = decode_shell_link(build_lnk(write_time=0x7FFFFFFFFFFFFFFF, creation_time=TS))

    assert target.target_mtime is None
    assert target.target_ctime == datetime(2020, 1, 1, tzinfo=timezone.utc)

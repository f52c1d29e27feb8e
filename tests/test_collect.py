from __future__ import annotations

import struct
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from dissect.execution import collect
from dissect.execution.tasks import TaskCacheEntry
from tests._utils import build_actions, build_lnk, build_prefetch

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def artifacts(tmp_path: Path) -> Path:
    prefetch = tmp_path.joinpath("Prefetch")
    prefetch.mkdir()
    prefetch.joinpath("CMD.EXE-0BD30981.pf").write_bytes(build_prefetch(executable="CMD.EXE", run_count=3))
    prefetch.joinpath("NOTEPAD.EXE-D8414F97.pf").write_bytes(build_prefetch(executable="NOTEPAD.EXE", file_hash=1))
    prefetch.joinpath("BROKEN.EXE-00000000.PF").write_bytes(b"\x1e\x00\x00\x00XXXX")
    prefetch.joinpath("Layout.ini").write_text("ignored")

    desktop = tmp_path.joinpath("Desktop")
    desktop.mkdir()
    desktop.joinpath("calc.lnk").write_bytes(build_lnk(strings={"name": "Calculator"}))
    desktop.joinpath("notes.txt").write_text("ignored")

    return tmp_path


def test_iter_files(artifacts: Path) -> None:
    prefetch = [path.name for path in collect.iter_files([artifacts], ".pf")]
    assert prefetch == ["BROKEN.EXE-00000000.PF", "CMD.EXE-0BD30981.pf", "NOTEPAD.EXE-D8414F97.pf"]

    desktop = artifacts.joinpath("Desktop")
    lnk = list(collect.iter_files([desktop.joinpath("calc.lnk"), desktop.joinpath("notes.txt")], ".lnk"))
    assert lnk == [desktop.joinpath("calc.lnk")]


@pytest.mark.parametrize("workers", [1, 4])
def test_iter_prefetch(artifacts: Path, workers: int, caplog_warning: pytest.LogCaptureFixture) -> None:
    results = list(collect.iter_prefetch(collect.iter_files([artifacts], ".pf"), workers=workers))

    assert [(path.name, entry.executable) for path, entry in results] == [
        ("CMD.EXE-0BD30981.pf", "CMD.EXE"),
        ("NOTEPAD.EXE-D8414F97.pf", "NOTEPAD.EXE"),
    ]
    assert "BROKEN.EXE-00000000.PF: Failed to decode" in caplog_warning.text
    assert "header hash 00000001 does not match the file name" in caplog_warning.text


def test_iter_lnk(artifacts: Path) -> None:
    results = list(collect.iter_lnk(collect.iter_files([artifacts], ".lnk")))

    assert len(results) == 1
    assert results[0][1].name == "Calculator"


def test_iter_lnk_max_size(artifacts: Path, caplog_warning: pytest.LogCaptureFixture) -> None:
    results = list(collect.iter_lnk(collect.iter_files([artifacts], ".lnk"), max_size=16))

    assert results == []
    assert "Refusing shell link" in caplog_warning.text


def test_iter_task_actions_resolves_author() -> None:
    entries = [
        TaskCacheEntry(task_id="{A}", actions=build_actions(run_as="Author"), path="\\A", author="DESKTOP\\alice"),
        TaskCacheEntry(task_id="{B}", actions=build_actions(run_as="Author"), path="\\B"),
        TaskCacheEntry(task_id="{C}", actions=b"\x63\x00"),
        TaskCacheEntry(task_id="{D}", actions=build_actions(run_as="SYSTEM"), author="DESKTOP\\alice"),
    ]

    results = list(collect.iter_task_actions(entries))

    assert [(entry.task_id, action.run_as) for entry, action in results] == [
        ("{A}", "DESKTOP\\alice"),
        ("{B}", "Author"),
        ("{D}", "SYSTEM"),
    ]


def test_decode_all_does_not_catch_programming_errors() -> None:
    with patch.object(collect, "decode_task_action", side_effect=KeyError("bug")), pytest.raises(KeyError):
        list(collect.iter_task_actions([TaskCacheEntry(task_id="{A}", actions=b"")]))


def test_iter_prefetch_corrupt_compressed(tmp_path: Path, caplog_warning: pytest.LogCaptureFixture) -> None:
    tmp_path.joinpath("A.EXE-00000000.pf").write_bytes(b"MAM" + struct.pack("<BI", 3, 10) + b"\x01")
    tmp_path.joinpath("CMD.EXE-0BD30981.pf").write_bytes(build_prefetch(executable="CMD.EXE"))

    results = list(collect.iter_prefetch(collect.iter_files([tmp_path], ".pf")))

    assert [entry.executable for _, entry in results] == ["CMD.EXE"]
    assert "A.EXE-00000000.pf: Failed to decode" in caplog_warning.text

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from dissect.execution.tasks import TaskCacheEntry
from dissect.execution.tools.dump import main as execution_dump
from tests._utils import build_actions, build_lnk, build_prefetch

if TYPE_CHECKING:
    from pathlib import Path


def run_dump(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture, *args: str) -> list[dict]:
    with monkeypatch.context() as m:
        m.setattr("sys.argv", ["execution-dump", "-j", *args])
        assert execution_dump() == 0

    out, _ = capsys.readouterr()
    lines = [json.loads(line) for line in out.splitlines() if line]
    return [line for line in lines if line.get("_type") != "recorddescriptor"]


def test_dump_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    tmp_path.joinpath("CMD.EXE-0BD30981.pf").write_bytes(build_prefetch(executable="CMD.EXE", run_count=3))
    tmp_path.joinpath("calc.lnk").write_bytes(build_lnk(strings={"name": "Calculator", "arguments": "/s"}))
    actions = tmp_path.joinpath("actions.bin")
    actions.write_bytes(build_actions(command="C:\\tool.exe", arguments="-q"))

    records = run_dump(monkeypatch, capsys, str(tmp_path), "--actions", str(actions), "-w", "2")

    assert [record["artifact"] for record in records] == ["prefetch", "lnk", "task"]
    assert records[0]["name"] == "CMD.EXE"
    assert records[0]["run_count"] == 3
    assert records[1]["name"] == "Calculator"
    assert records[1]["arguments"] == "/s"
    assert records[2]["name"] == "tool.exe"
    assert records[2]["arguments"] == "-q"
    assert records[2]["run_as"] == "SYSTEM"


def test_dump_hive(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    hive = tmp_path.joinpath("SOFTWARE")
    hive.write_bytes(b"regf")

    entries = [
        TaskCacheEntry(
            task_id="{A}",
            actions=build_actions(run_as="Author", command="C:\\updater.exe"),
            path="\\Vendor\\Updater",
            author="DESKTOP\\alice",
        )
    ]

    with patch("dissect.execution.tools.dump.iter_task_cache", return_value=iter(entries)):
        records = run_dump(monkeypatch, capsys, "--hive", str(hive))

    assert len(records) == 1
    assert records[0]["name"] == "Updater"
    assert records[0]["run_as"] == "DESKTOP\\alice"


def test_dump_invalid_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    tmp_path.joinpath(".executioncfg.py").write_text("WORKERS = 0")

    with monkeypatch.context() as m:
        m.setattr("sys.argv", ["execution-dump", "-c", str(tmp_path), str(tmp_path)])
        assert execution_dump() == 1


def test_dump_no_artifacts(monkeypatch: pytest.MonkeyPatch) -> None:
    with monkeypatch.context() as m:
        m.setattr("sys.argv", ["execution-dump"])
        with pytest.raises(SystemExit):
            execution_dump()

from __future__ import annotations

import ntpath
from typing import TYPE_CHECKING, Union

from flow.record import Record, RecordDescriptor
from flow.record.fieldtypes import path

from dissect.execution.helpers.ts import nt_timestamp
from dissect.execution.lnk import ShellLinkTarget
from dissect.execution.prefetch import PrefetchRecord
from dissect.execution.tasks import ExecType, ScheduledTaskAction

if TYPE_CHECKING:
    from pathlib import Path

DecodedArtifact = Union[PrefetchRecord, ShellLinkTarget, ScheduledTaskAction]

ArtifactRecord = RecordDescriptor(
    "windows/execution/artifact",
    [
        ("datetime", "ts"),
        ("string", "artifact"),
        ("path", "source"),
        ("string", "name"),
        ("path", "target"),
        ("string", "arguments"),
        ("path", "working_dir"),
        ("string", "run_as"),
        ("varint", "run_count"),
        ("datetime[]", "previous_runs"),
        ("path[]", "referenced"),
        ("string[]", "volumes"),
        ("string", "version"),
    ],
)


def _path(value: str | None) -> path | None:
    return path.from_windows(value) if value else None


def from_prefetch(entry: PrefetchRecord, source: Path | str | None = None) -> Record:
    """Normalize a decoded Prefetch file.

    The target is the referenced module that ends with the executable name, falling back to the bare name.
    """
    suffix = "\\" + entry.executable.lower()
    target = next((module for module in entry.referenced_modules if module.lower().endswith(suffix)), None)

    return ArtifactRecord(
        ts=nt_timestamp(entry.last_run_times[0]) if entry.last_run_times else None,
        artifact="prefetch",
        source=source,
        name=entry.executable,
        target=_path(target or entry.executable),
        run_count=entry.run_count,
        previous_runs=[ts for ts in map(nt_timestamp, entry.last_run_times[1:]) if ts],
        referenced=[_path(module) for module in entry.referenced_modules],
        volumes=[f"{volume.device_name} ({volume.serial})" for volume in entry.volumes],
        version=str(int(entry.version)),
    )


def from_shell_link(entry: ShellLinkTarget, source: Path | str | None = None) -> Record:
    volumes = []
    if entry.link_info and entry.link_info.volume:
        volume = entry.link_info.volume
        volumes.append(f"{volume.label or ''} ({volume.serial})")

    return ArtifactRecord(
        ts=nt_timestamp(entry.write_time),
        artifact="lnk",
        source=source,
        name=entry.name or None,
        target=_path(entry.target_path),
        arguments=entry.arguments or None,
        working_dir=_path(entry.working_dir),
        referenced=[_path(entry.relative_path)] if entry.relative_path else [],
        volumes=volumes,
    )


def from_task_action(entry: ScheduledTaskAction, source: Path | str | None = None, name: str | None = None) -> Record:
    return ArtifactRecord(
        artifact="task",
        source=source,
        name=name or (ntpath.basename(entry.command) if entry.command else None),
        target=_path(entry.command) if entry.exec_type is ExecType.EXECUTABLE else None,
        arguments=entry.arguments or None,
        working_dir=_path(entry.working_dir),
        run_as=entry.run_as,
        version=str(entry.version),
    )


NORMALIZERS = {
    PrefetchRecord: from_prefetch,
    ShellLinkTarget: from_shell_link,
    ScheduledTaskAction: from_task_action,
}


def to_artifact_record(entry: DecodedArtifact, source: Path | str | None = None) -> Record:
    """Normalize any decoded artifact into an :data:`ArtifactRecord`."""
    try:
        normalizer = NORMALIZERS[type(entry)]
    except KeyError:
        raise TypeError(f"Unsupported artifact type: {type(entry).__name__}")
    return normalizer(entry, source)

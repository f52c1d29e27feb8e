from dissect.execution.compression import decompress, is_compressed
from dissect.execution.exceptions import (
    ConfigError,
    DecodeError,
    DecompressionError,
    DecompressionMismatchError,
    Error,
    StructuralMismatchError,
    TruncatedBufferError,
    UnimplementedLayoutError,
    UnsupportedCompressionError,
    UnsupportedVersionError,
)
from dissect.execution.lnk import ShellLinkTarget, decode_shell_link
from dissect.execution.prefetch import PrefetchRecord, decode_prefetch
from dissect.execution.records import ArtifactRecord, to_artifact_record
from dissect.execution.tasks import ScheduledTaskAction, decode_task_action

__all__ = [
    "ArtifactRecord",
    "ConfigError",
    "DecodeError",
    "DecompressionError",
    "DecompressionMismatchError",
    "Error",
    "PrefetchRecord",
    "ScheduledTaskAction",
    "ShellLinkTarget",
    "StructuralMismatchError",
    "TruncatedBufferError",
    "UnimplementedLayoutError",
    "UnsupportedCompressionError",
    "UnsupportedVersionError",
    "decode_prefetch",
    "decode_shell_link",
    "decode_task_action",
    "decompress",
    "is_compressed",
    "to_artifact_record",
]

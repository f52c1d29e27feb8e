from __future__ import annotations

import traceback


class Error(Exception):
    """Generic dissect.execution error"""

    def __init__(self, message: str | None = None, cause: Exception | None = None, extra: list | None = None):
        if extra:
            exceptions = "\n\n".join(["".join(traceback.format_exception_only(type(e), e)) for e in extra])
            message = f"{message}\n\nAdditionally, the following exceptions occurred:\n\n{exceptions}"

        super().__init__(message)
        self.__cause__ = cause
        self.__extra__ = extra


class ConfigError(Error):
    """A configuration value is invalid."""


class DecodeError(Error):
    """An artifact could not be decoded."""


class StructuralMismatchError(DecodeError):
    """A signature, size or class identifier does not match the expected format."""


class TruncatedBufferError(DecodeError):
    """A read would go past the end of the buffer."""

    def __init__(self, offset: int, size: int, length: int, message: str | None = None):
        self.offset = offset
        self.size = size
        self.length = length
        super().__init__(message or f"Read of {size} bytes at offset {offset:#x} exceeds buffer length {length:#x}")


class UnsupportedVersionError(DecodeError):
    """The artifact carries a version this package does not know."""


class UnimplementedLayoutError(UnsupportedVersionError):
    """The version is known, but its layout is not implemented."""


class UnsupportedCompressionError(DecodeError):
    """The compressed container uses an unknown algorithm."""


class DecompressionError(DecodeError):
    """The compressed payload could not be decompressed."""


class DecompressionMismatchError(DecompressionError):
    """The decompressed size differs from the size declared in the container header."""


class RegistryError(Error):
    """A registry error occurred."""


class RegistryKeyNotFoundError(RegistryError):
    """The requested registry key was not found."""

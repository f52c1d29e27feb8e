from __future__ import annotations

import struct
from enum import IntEnum
from typing import Callable

from dissect.cstruct import cstruct
from dissect.util.compression import lzxpress, lzxpress_huffman

from dissect.execution.exceptions import (
    DecompressionError,
    DecompressionMismatchError,
    StructuralMismatchError,
    UnsupportedCompressionError,
)
from dissect.execution.helpers.cursor import ByteCursor
from dissect.execution.helpers.logging import get_logger

log = get_logger(__name__)

compression_def = """
struct MAM_HEADER {
    char    signature[3];
    uint8   algorithm;
    uint32  decompressed_size;
};
"""
c_compression = cstruct().load(compression_def)

MAM_SIGNATURE = b"MAM"

# High bit of the algorithm byte, a CRC32 of the container follows the header
MAM_CHECKSUM_FLAG = 0x80


class CompressionAlgorithm(IntEnum):
    XPRESS = 3
    XPRESS_HUFFMAN = 4


CODECS: dict[CompressionAlgorithm, Callable[[bytes], bytes]] = {
    CompressionAlgorithm.XPRESS: lzxpress.decompress,
    CompressionAlgorithm.XPRESS_HUFFMAN: lzxpress_huffman.decompress,
}


def is_compressed(data: bytes) -> bool:
    """Return whether ``data`` starts with the compressed Prefetch container signature."""
    return data[:3] == MAM_SIGNATURE


def decompress(data: bytes) -> bytes:
    """Decompress a ``MAM`` Prefetch container.

    The container is a 3 byte signature, a 1 byte algorithm identifier and a 4 byte decompressed size, optionally
    followed by a 4 byte checksum, and then the compressed payload.

    Raises:
        StructuralMismatchError: If the signature is missing.
        TruncatedBufferError: If the header does not fit in ``data``.
        UnsupportedCompressionError: If the algorithm is unknown.
        DecompressionError: If the codec fails on the payload.
        DecompressionMismatchError: If the output size differs from the declared size.
    """
    cursor = ByteCursor(data)
    header = cursor.read_struct(c_compression.MAM_HEADER)

    if header.signature != MAM_SIGNATURE:
        raise StructuralMismatchError(f"Invalid compressed container signature: {header.signature!r}")

    if header.algorithm & MAM_CHECKSUM_FLAG:
        # CRC32 of the container, not verified
        cursor.skip(4)

    try:
        algorithm = CompressionAlgorithm(header.algorithm & ~MAM_CHECKSUM_FLAG)
    except ValueError:
        raise UnsupportedCompressionError(f"Unsupported compression algorithm: {header.algorithm:#x}")

    log.debug("Decompressing %d bytes using %s", cursor.remaining(), algorithm.name)

    payload = cursor.read(cursor.remaining())
    try:
        result = CODECS[algorithm](payload)
    except (EOFError, IndexError, TypeError, ValueError, struct.error) as e:
        raise DecompressionError(f"Failed to decompress {algorithm.name} payload", cause=e)

    if len(result) != header.decompressed_size:
        raise DecompressionMismatchError(
            f"Decompressed size {len(result)} does not match declared size {header.decompressed_size}"
        )

    return result

from __future__ import annotations

import logging

from dissect.execution.helpers.logging import get_logger

log = get_logger(__name__)


def decode_utf16(data: bytes) -> str:
    """Decode UTF-16LE bytes, replacing undecodable code units instead of failing."""
    return data.decode("utf-16-le", errors="replace")


def decode_narrow(data: bytes, encoding: str = "cp1252") -> str:
    """Decode system code page bytes, replacing undecodable bytes instead of failing."""
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        log.warning("Unknown code page %r, falling back to latin-1", encoding)
        return data.decode("latin-1")


def strip_nul(value: str) -> str:
    return value.replace("\x00", "")


def looks_wide(data: bytes) -> bool:
    """Return whether ``data`` reads as UTF-16LE text rather than narrow text.

    Zero-extended ASCII (every odd byte ``0``) is always wide. Other even-length input counts as wide only
    when it decodes to printable UTF-16 while the narrow reading of the same bytes contains control characters.
    """
    if not data or len(data) % 2:
        return False

    if not any(data[1::2]):
        return True

    try:
        wide = data.decode("utf-16-le")
    except UnicodeDecodeError:
        return False

    return wide.isprintable() and not data.decode("latin-1").isprintable()


def decode_text(data: bytes, declared_len: int) -> str:
    """Decode a byte-count prefixed string from a scheduled task ``Actions`` value.

    The prefix is a byte count of UTF-16 text, but some producers store narrow text under the same count. When the
    payload does not look wide, the declared length is halved and that many bytes are decoded as narrow text. The
    caller always advances by the full ``declared_len``.

    Args:
        data: The payload bytes, at least ``declared_len`` long.
        declared_len: The byte count read from the length prefix.

    Returns:
        The decoded string with nul characters removed.
    """
    data = data[:declared_len]

    if looks_wide(data):
        return strip_nul(decode_utf16(data))

    if log.isEnabledFor(logging.DEBUG):
        log.debug("Payload of %d bytes is not UTF-16, reading %d narrow characters", declared_len, declared_len // 2)

    return strip_nul(decode_narrow(data[: declared_len // 2], "latin-1"))

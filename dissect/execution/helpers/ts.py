from __future__ import annotations

from typing import TYPE_CHECKING

from dissect.util.ts import wintimestamp

from dissect.execution.helpers.logging import get_logger

if TYPE_CHECKING:
    from datetime import datetime

log = get_logger(__name__)


def nt_timestamp(value: int) -> datetime | None:
    """Convert an NT timestamp, returning ``None`` for zero and for values outside the ``datetime`` range."""
    if not value:
        return None
    try:
        return wintimestamp(value)
    except (OverflowError, ValueError):
        log.warning("Invalid NT timestamp: %#x", value)
        return None

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from dissect.execution.helpers.ts import nt_timestamp


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, None),
        (132223104000000000, datetime(2020, 1, 1, tzinfo=timezone.utc)),
        (0x7FFFFFFFFFFFFFFF, None),
        (0xFFFFFFFFFFFFFFFF, None),
    ],
)
def test_nt_timestamp(value: int, expected: datetime | None) -> None:
    assert nt_timestamp(value) == expected

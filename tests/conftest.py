from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from dissect.execution.helpers.logging import TRACE_LEVEL

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def caplog_trace(caplog: pytest.LogCaptureFixture) -> Iterator[pytest.LogCaptureFixture]:
    with caplog.at_level(TRACE_LEVEL, logger="dissect.execution"):
        yield caplog


@pytest.fixture
def caplog_warning(caplog: pytest.LogCaptureFixture) -> Iterator[pytest.LogCaptureFixture]:
    with caplog.at_level(logging.WARNING, logger="dissect.execution"):
        yield caplog

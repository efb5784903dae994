from __future__ import annotations

import logging
import uuid

import pytest

from tests.helpers import RecordingHandler


@pytest.fixture
def sink() -> tuple[logging.Logger, RecordingHandler]:
    logger = logging.getLogger(f"vitehost.tests.{uuid.uuid4().hex}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = RecordingHandler()
    logger.addHandler(handler)
    return logger, handler

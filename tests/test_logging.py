"""Tests for structured log formatting."""

import logging
from unittest.mock import MagicMock

from app.core.logging import StructuredFormatter, log_with_context


def _record(msg="Answer synthesized", **attrs):
    record = logging.LogRecord("app.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_context_fields_precede_message(self):
        line = StructuredFormatter().format(_record(turn_id="t1", stage="reason"))

        assert "turn_id=t1" in line
        assert "stage=reason" in line
        assert line.index("turn_id=t1") < line.index("message=Answer synthesized")

    def test_none_context_is_omitted(self):
        line = StructuredFormatter().format(_record(turn_id=None, extra_data={"saved": 1}))

        assert "turn_id" not in line
        assert line.endswith("saved=1")


class TestLogWithContext:
    def test_splits_context_from_extra_data(self):
        logger = MagicMock()

        log_with_context(logger, logging.INFO, "saved", turn_id="t1", user_id="u1", count=2)

        logger.log.assert_called_once_with(
            logging.INFO,
            "saved",
            extra={"turn_id": "t1", "user_id": "u1", "extra_data": {"count": 2}},
        )

"""
Tests for structured logging setup.
"""

import json
import logging
import sys
from contextlib import contextmanager

from mealdesk.core.logging_config import (
    ConsoleFormatter,
    JSONFormatter,
    get_logger,
    log_with_context,
    setup_logging,
)


@contextmanager
def preserved_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        yield root
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


def make_record(**extra):
    record = logging.LogRecord(
        name="mealdesk.core.executor",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="Transaction rolled back: %s",
        args=("boom",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_standard_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "ERROR"
        assert data["message"] == "Transaction rolled back: boom"
        assert data["logger"] == "mealdesk.core.executor"
        assert "timestamp" in data

    def test_extra_fields(self):
        """Test that extra= fields are emitted and None values dropped."""
        record = make_record(statement_index=2, isolation_level="REPEATABLE READ", reason=None)

        data = json.loads(JSONFormatter().format(record))

        assert data["statement_index"] == 2
        assert data["isolation_level"] == "REPEATABLE READ"
        assert "reason" not in data
        assert "args" not in data

    def test_exception(self):
        try:
            raise RuntimeError("broken")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: broken" in data["exception"]


class TestConsoleFormatter:
    def test_context_appended(self):
        """Test that context fields follow the message on the first line."""
        record = make_record(transaction="A", value="1000.00")

        line = ConsoleFormatter().format(record)

        assert line.endswith("mealdesk.core.executor: Transaction rolled back: boom [transaction=A value=1000.00]")

    def test_without_context(self):
        line = ConsoleFormatter().format(make_record())

        assert line.endswith("Transaction rolled back: boom")


class TestSetup:
    def test_json_handler(self):
        with preserved_root_logger() as root:
            setup_logging(level="debug", json_format=True)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_plain_handler(self):
        with preserved_root_logger() as root:
            setup_logging(level="INFO", json_format=False)

            assert root.level == logging.INFO
            assert isinstance(root.handlers[0].formatter, ConsoleFormatter)


def test_log_with_context(caplog):
    logger = get_logger("mealdesk.test")

    with caplog.at_level(logging.INFO):
        log_with_context(logger, "info", "Transaction A: first read", transaction="A", value=None)

    record = caplog.records[-1]
    assert record.message == "Transaction A: first read"
    assert record.transaction == "A"
    assert not hasattr(record, "value")

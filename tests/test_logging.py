import asyncio
import logging

import pytest

from app.core.logging import ContextFilter, LogContext, current_log_context, get_logger


@pytest.fixture
def records():
    """Collects records from a handler carrying the context filter."""
    collected = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            collected.append(record)

    handler = ListHandler()
    handler.addFilter(ContextFilter())
    logger = get_logger("tests.context")
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield collected
    logger.removeHandler(handler)


def test_context_fields_reach_records(records):
    with LogContext(user_id="US20261", order_id="ODR-1"):
        get_logger("tests.context").info("inside")
    get_logger("tests.context").info("outside")

    assert records[0].user_id == "US20261"
    assert records[0].order_id == "ODR-1"
    assert not hasattr(records[1], "user_id")


def test_extra_key_matching_context_does_not_raise(records):
    with LogContext(user_id="US20261"):
        get_logger("tests.context").info("cleared", extra={"user_id": "US20262"})

    assert records[0].user_id == "US20262"


def test_nested_contexts_restore_outer():
    with LogContext(user_id="US20261"):
        with LogContext(order_id="ODR-1"):
            assert current_log_context() == {"user_id": "US20261", "order_id": "ODR-1"}
        assert current_log_context() == {"user_id": "US20261"}
    assert current_log_context() == {}


async def test_overlapping_tasks_keep_their_own_context(records):
    logger = get_logger("tests.context")

    async def work(user_id, delay):
        with LogContext(user_id=user_id):
            await asyncio.sleep(delay)
            logger.info("done")

    await asyncio.gather(work("US20261", 0.02), work("US20262", 0.01))

    assert sorted(record.user_id for record in records) == ["US20261", "US20262"]
    assert current_log_context() == {}
    assert logging.getLogRecordFactory() is logging.LogRecord

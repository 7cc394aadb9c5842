from __future__ import annotations

import asyncio
import json
import logging
import re
from io import StringIO
from typing import TYPE_CHECKING

import pytest

from askeduler.core import RetryParams
from askeduler.exceptions import RetryableActionError
from askeduler.retry import RetryEngine, retry_action
from askeduler.signals import SignalBus
from askeduler.utils.structured_logging import (
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    log_structured,
    set_correlation_id,
)

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def structured_logger(
    request: pytest.FixtureRequest,
) -> Generator[tuple[logging.Logger, StringIO], None, None]:
    """Create a logger writing JSON records to a string buffer."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger(f"test_structured.{request.node.name}")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        yield logger, stream
    finally:
        logger.removeHandler(handler)
        clear_correlation_id()


def read_records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().strip().split("\n")]


##############################################
#     Tests for correlation ID management    #
##############################################


def test_get_correlation_id_initially_none() -> None:
    """Test that correlation ID is initially None."""
    clear_correlation_id()  # Ensure clean state
    assert get_correlation_id() is None


def test_set_and_get_correlation_id() -> None:
    set_correlation_id("sync-123")
    assert get_correlation_id() == "sync-123"
    clear_correlation_id()


def test_clear_correlation_id() -> None:
    set_correlation_id("sync-456")
    clear_correlation_id()
    assert get_correlation_id() is None


@pytest.mark.asyncio
async def test_correlation_id_isolated_between_tasks() -> None:
    """Test that a correlation ID set in a task does not leak to others."""

    async def worker(name: str) -> str | None:
        set_correlation_id(name)
        await asyncio.sleep(0.01)
        return get_correlation_id()

    clear_correlation_id()
    results = await asyncio.gather(worker("a"), worker("b"))
    assert results == ["a", "b"]
    assert get_correlation_id() is None


##############################################
#     Tests for StructuredFormatter          #
##############################################


def test_structured_formatter_basic_log(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    """Test that StructuredFormatter produces valid JSON."""
    logger, stream = structured_logger
    logger.info("Engine started")

    (log_data,) = read_records(stream)
    assert log_data["message"] == "Engine started"
    assert log_data["level"] == "INFO"
    assert log_data["logger"] == logger.name
    assert log_data["function"] == "test_structured_formatter_basic_log"
    assert isinstance(log_data["line"], int)
    assert "module" in log_data
    assert "correlation_id" not in log_data


def test_structured_formatter_timestamp(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    """Test that the timestamp is ISO 8601 with milliseconds."""
    logger, stream = structured_logger
    logger.info("tick")
    (log_data,) = read_records(stream)
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", log_data["timestamp"])


def test_structured_formatter_with_correlation_id(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = structured_logger
    set_correlation_id("sync-789")
    logger.info("Run started")

    (log_data,) = read_records(stream)
    assert log_data["correlation_id"] == "sync-789"


def test_structured_formatter_with_extra_fields(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = structured_logger
    logger.info("Timer fired", extra={"scope_id": "engine-1", "attempt": 2})

    (log_data,) = read_records(stream)
    assert log_data["scope_id"] == "engine-1"
    assert log_data["attempt"] == 2


def test_structured_formatter_non_serializable_extra(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    """Test that values which are not JSON serializable use repr."""
    logger, stream = structured_logger
    logger.info("Payload", extra={"payload": {1, 2}})

    (log_data,) = read_records(stream)
    assert log_data["payload"] == "{1, 2}"


def test_structured_formatter_different_log_levels(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = structured_logger
    logger.debug("Debug message")
    logger.info("Info message")
    logger.warning("Warning message")
    logger.error("Error message")

    levels = [record["level"] for record in read_records(stream)]
    assert levels == ["DEBUG", "INFO", "WARNING", "ERROR"]


def test_structured_formatter_with_exception(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = structured_logger
    try:
        msg = "boom"
        raise ValueError(msg)
    except ValueError:
        logger.exception("Attempt failed")

    (log_data,) = read_records(stream)
    assert "ValueError: boom" in log_data["exception"]


####################################
#     Tests for log_structured     #
####################################


def test_log_structured(structured_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = structured_logger
    log_structured(
        logger, logging.DEBUG, "Engine exhausted", scope_id="engine-1", state="exhausted"
    )

    (log_data,) = read_records(stream)
    assert log_data["message"] == "Engine exhausted"
    assert log_data["level"] == "DEBUG"
    assert log_data["scope_id"] == "engine-1"
    assert log_data["state"] == "exhausted"


def test_log_structured_disabled_level(
    structured_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = structured_logger
    logger.setLevel(logging.WARNING)
    log_structured(logger, logging.DEBUG, "Hidden", scope_id="engine-1")
    assert stream.getvalue() == ""


@pytest.mark.asyncio
async def test_retry_engine_logs_structured_fields(caplog: pytest.LogCaptureFixture) -> None:
    """Test that the engine lifecycle records carry their scope and state."""
    with caplog.at_level(logging.DEBUG, logger="askeduler"):
        engine = RetryEngine(SignalBus(), RetryParams(delay=0, max_retries=0))
        engine.start()
        await asyncio.sleep(0.02)

    records = [record for record in caplog.records if getattr(record, "state", None)]
    assert records
    assert records[-1].scope_id == engine.scope_id
    assert records[-1].state == "exhausted"
    assert records[-1].attempt == 1


@pytest.mark.asyncio
async def test_retry_action_records_carry_caller_correlation_id() -> None:
    """Test that a correlation ID set around a run reaches every record."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger("askeduler")
    level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    calls = []

    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 2:
            raise RetryableActionError("not yet")
        return "done"

    set_correlation_id("sync-42")
    try:
        assert await retry_action(flaky, RetryParams(delay=1, max_retries=2)) == "done"
    finally:
        clear_correlation_id()
        logger.removeHandler(handler)
        logger.setLevel(level)

    records = read_records(stream)
    assert records
    assert all(record["correlation_id"] == "sync-42" for record in records)
    assert any(str(record.get("scope_id", "")).startswith("run-") for record in records)

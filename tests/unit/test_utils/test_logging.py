"""Tests for structured logging helpers."""

import logging
import pytest
from unittest.mock import patch
from pythonjsonlogger import jsonlogger
from src.utils.logging import (
    correlation_context,
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_user_id,
)
from src.utils.logging_config import LoggingConfig


@pytest.mark.unit
def test_mask_user_id():
    assert mask_user_id("manager-1") == "manager-1"
    masked = mask_user_id("manager-with-a-long-identifier")
    assert masked.startswith("mana...")
    assert len(masked) == 4 + 3 + 8
    assert mask_user_id(None) is None


@pytest.mark.unit
def test_correlation_context_restores_previous_id():
    assert get_correlation_id() is None

    with correlation_context("req_outer") as outer:
        with correlation_context() as inner:
            assert inner.startswith("req_")
            assert get_correlation_id() == inner
        assert get_correlation_id() == outer

    assert get_correlation_id() is None


@pytest.mark.unit
def test_structured_fields_attached(caplog):
    """Test keyword arguments become record attributes."""
    logger = get_structured_logger("tests.structured")

    with caplog.at_level(logging.INFO, logger="tests.structured"):
        with correlation_context("req_abc123"):
            logger.info("Listing created", listing_id="listing-1", unit_id="unit-1")

    record = caplog.records[-1]
    assert record.getMessage() == "Listing created"
    assert record.listing_id == "listing-1"
    assert record.unit_id == "unit-1"
    assert record.correlation_id == "req_abc123"


@pytest.mark.unit
def test_log_timing_warns_on_slow_operation(caplog):
    logger = get_structured_logger("tests.timing")

    with patch.object(LoggingConfig, "LOG_SLOW_OPERATION_THRESHOLD_MS", -1):
        with caplog.at_level(logging.DEBUG, logger="tests.timing"):
            with log_timing("create_listing", logger, unit_id="unit-1"):
                pass

    messages = [r.getMessage() for r in caplog.records]
    assert messages == [
        "Starting create_listing",
        "Completed create_listing",
        "Slow operation detected: create_listing",
    ]
    assert caplog.records[1].processing_time_ms >= 0
    assert caplog.records[2].unit_id == "unit-1"


@pytest.mark.unit
def test_setup_logging_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        with patch.object(LoggingConfig, "LOG_FORMAT", "json"), patch.object(LoggingConfig, "LOG_LEVEL", "DEBUG"):
            LoggingConfig.setup_logging()

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, jsonlogger.JsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("postgrest").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

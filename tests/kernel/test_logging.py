"""Tests for the structured logging system (asset_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from asset_kernel.exceptions import AssetNotFoundError
from asset_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from asset_modules.assets.models import AssetStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite default."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "asset_kernel.test"
        assert "ts" in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        asset_id = uuid4()
        get_logger("test").info(
            "asset_depreciated",
            extra={
                "asset_id": asset_id,
                "amount": Decimal("1000.00"),
                "calculation_date": date(2024, 1, 31),
                "status": AssetStatus.DEPLOYED,
            },
        )

        record = _parse_all_logs(stream)[0]
        assert record["asset_id"] == str(asset_id)
        assert record["amount"] == "1000.00"
        assert record["calculation_date"] == "2024-01-31"
        assert record["status"] == "DEPLOYED"

    def test_exception_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise AssetNotFoundError("abc")
        except AssetNotFoundError:
            get_logger("test").warning("lookup_failed", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "AssetNotFoundError"
        assert record["exc_code"] == "NOT_FOUND"
        assert record["exc_entity_id"] == "abc"
        assert "traceback" in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]


class TestLogContext:

    def test_bound_fields_appear_and_are_restored(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        execution_id = uuid4()

        with LogContext.bind(execution_id=execution_id, schedule_id=None):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _parse_all_logs(stream)
        assert inside["execution_id"] == str(execution_id)
        assert "schedule_id" not in inside
        assert "execution_id" not in outside

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(tenant="x")

    def test_clear(self):
        LogContext.set(actor_id=uuid4())
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("asset_kernel").handlers) == 1

    def test_reset_clears_handlers(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        assert logging.getLogger("asset_kernel").handlers == []

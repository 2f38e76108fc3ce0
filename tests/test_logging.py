"""Structured logging: JSON record shape, bound context, kernel error fields."""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from loyalty_kernel.exceptions import (
    InsufficientPointsError,
    PermissionDeniedError,
    StorageFailureError,
    ThrottledError,
)
from loyalty_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from loyalty_kernel.models.account import Role


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


@pytest.fixture
def stream():
    out = StringIO()
    handler = logging.StreamHandler(out)
    configure_logging(handler=handler, level=logging.DEBUG)
    return out


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _log_exception(exc: BaseException) -> None:
    try:
        raise exc
    except BaseException:
        get_logger("test").warning("operation_rejected", exc_info=True)


class TestRecordShape:

    def test_core_fields(self, stream):
        get_logger("services.ledger_engine").info("purchase_completed")

        [record] = _records(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "purchase_completed"
        assert record["logger"] == "loyalty_kernel.services.ledger_engine"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_domain_values_are_serialized(self, stream):
        get_logger("test").info(
            "purchase_recorded",
            extra={
                "spent": Decimal("19.99"),
                "role": Role.CASHIER,
                "at": datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
                "promotion_ids": frozenset({7}),
            },
        )

        [record] = _records(stream)
        assert record["spent"] == "19.99"
        assert record["role"] == "cashier"
        assert record["at"] == "2025-03-01T12:00:00+00:00"
        assert record["promotion_ids"] == [7]

    def test_level_filters_records(self):
        out = StringIO()
        configure_logging(handler=logging.StreamHandler(out))
        get_logger("test").debug("noise")
        get_logger("test").info("signal")

        assert [r["message"] for r in _records(out)] == ["signal"]


class TestKernelErrorFields:

    @pytest.mark.parametrize(
        "exc, category, status",
        [
            (InsufficientPointsError(7, 50, 20), "business_rule", 400),
            (PermissionDeniedError(3, "adjust", "manager"), "permission", 403),
            (ThrottledError("10.0.0.1", 42), "rate_limited", 429),
        ],
    )
    def test_rejections_carry_category_without_traceback(self, stream, exc, category, status):
        _log_exception(exc)

        [record] = _records(stream)
        assert record["exc_code"] == exc.code
        assert record["exc_category"] == category
        assert record["exc_http_status"] == status
        assert "traceback" not in record

    def test_structured_attributes(self, stream):
        _log_exception(InsufficientPointsError(7, 50, 20))

        [record] = _records(stream)
        assert record["exc_type"] == "InsufficientPointsError"
        assert record["exc_account_id"] == 7
        assert record["exc_requested"] == 50
        assert record["exc_available"] == 20

    def test_internal_error_keeps_traceback(self, stream):
        _log_exception(StorageFailureError("transfer", "OperationalError"))

        [record] = _records(stream)
        assert record["exc_category"] == "internal"
        assert record["exc_http_status"] == 500
        assert record["exc_operation"] == "transfer"
        assert "StorageFailureError" in record["traceback"]

    def test_foreign_exception(self, stream):
        _log_exception(ValueError("boom"))

        [record] = _records(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "exc_category" not in record
        assert "traceback" in record


class TestLogContext:

    def test_bound_fields_reach_records(self, stream):
        with LogContext.bind(correlation_id="c-1", operation="transfer", actor_id=12):
            get_logger("test").info("transfer_started")
        get_logger("test").info("idle")

        started, idle = _records(stream)
        assert started["operation"] == "transfer"
        assert started["actor_id"] == "12"
        assert "correlation_id" not in idle

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(correlation_id="outer", account_id=1):
            with LogContext.bind(correlation_id="inner", event_id=5):
                assert LogContext.current() == {
                    "correlation_id": "inner",
                    "account_id": "1",
                    "event_id": "5",
                }
            assert LogContext.current() == {"correlation_id": "outer", "account_id": "1"}
        assert LogContext.current() == {}

    def test_unknown_and_none_fields_ignored(self):
        with LogContext.bind(operation="adjust", colour="red", transaction_id=None):
            assert LogContext.current() == {"operation": "adjust"}

    def test_ledger_operation_records_carry_actor(self, captured_logs, cashier, customer, fund):
        fund(customer.id, 40)

        completed = [r for r in captured_logs() if r["message"] == "purchase_completed"]
        assert completed
        assert completed[0]["operation"] == "purchase"
        assert completed[0]["actor_id"] == str(cashier.id)


class TestConfigureLogging:

    def test_second_call_installs_nothing(self):
        kernel_logger = logging.getLogger("loyalty_kernel")
        configure_logging(handler=logging.StreamHandler(StringIO()))
        installed = len(kernel_logger.handlers)

        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert len(kernel_logger.handlers) == installed

    def test_reset_leaves_foreign_handlers(self):
        kernel_logger = logging.getLogger("loyalty_kernel")
        foreign = logging.StreamHandler(StringIO())
        kernel_logger.addHandler(foreign)
        try:
            configure_logging(handler=logging.StreamHandler(StringIO()))
            reset_logging()
            assert foreign in kernel_logger.handlers
        finally:
            kernel_logger.removeHandler(foreign)

    def test_formatter_is_structured(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

"""Tests for structured logging module."""

import asyncio

import pytest

from omnidb.logging.structured import LogContext, StructuredLogger


class TestLogContext:
    """Test cases for LogContext class."""

    def test_set_and_get_context_value(self):
        """Test setting and getting context values."""
        context = LogContext()
        token = context.update({})
        try:
            context.set("config_id", "42")
            context.set("attempt", 2)

            assert context.get("config_id") == "42"
            assert context.get("attempt") == 2
            assert context.get("nonexistent") is None
            assert context.get("nonexistent", "default") == "default"
        finally:
            context.reset(token)

    def test_update_and_reset(self):
        context = LogContext()
        before = context.get_all()

        token = context.update({"operation": "GET_TABLES", "engine": "mysql"})
        assert context.get_all() == {**before, "operation": "GET_TABLES", "engine": "mysql"}

        context.reset(token)
        assert context.get_all() == before

    @pytest.mark.asyncio
    async def test_context_is_task_local(self):
        """Concurrent tasks never see each other's context."""
        context = LogContext()

        async def worker(config_id: str) -> str:
            context.update({"config_id": config_id})
            await asyncio.sleep(0.01)
            return context.get("config_id")

        results = await asyncio.gather(worker("a"), worker("b"), worker("c"))

        assert results == ["a", "b", "c"]


class TestStructuredLogger:
    """Test cases for StructuredLogger class."""

    def test_event_carries_logger_name_and_fields(self, log_output):
        logger = StructuredLogger("omnidb.test.fields")

        logger.info("Pool created", config_id="prod_db", max_size=10)

        entry = log_output.entries[-1]
        assert entry["event"] == "Pool created"
        assert entry["log_level"] == "info"
        assert entry["logger"] == "omnidb.test.fields"
        assert entry["config_id"] == "prod_db"
        assert entry["max_size"] == 10

    @pytest.mark.parametrize("method,level", [
        ("debug", "debug"),
        ("info", "info"),
        ("warning", "warning"),
        ("error", "error"),
        ("critical", "critical"),
    ])
    def test_levels(self, log_output, method, level):
        logger = StructuredLogger("omnidb.test.levels")

        getattr(logger, method)("message")

        assert log_output.entries[-1]["log_level"] == level

    def test_context_manager_adds_and_removes_fields(self, log_output):
        logger = StructuredLogger("omnidb.test.context")

        with logger.context(config_id="42", operation="EXECUTE_QUERY"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = log_output.entries[-2:]
        assert inside["config_id"] == "42"
        assert inside["operation"] == "EXECUTE_QUERY"
        assert "config_id" not in outside

    def test_context_is_reset_after_exception(self, log_output):
        logger = StructuredLogger("omnidb.test.context_error")

        with pytest.raises(RuntimeError):
            with logger.context(config_id="42"):
                raise RuntimeError("boom")
        logger.info("after")

        assert "config_id" not in log_output.entries[-1]

    def test_bind_returns_new_logger(self, log_output):
        logger = StructuredLogger("omnidb.test.bind")
        bound = logger.bind(engine="postgresql")

        bound.warning("Probe failed")
        logger.warning("Unbound")

        assert log_output.entries[-2]["engine"] == "postgresql"
        assert "engine" not in log_output.entries[-1]

    def test_secrets_are_masked(self, log_output):
        logger = StructuredLogger("omnidb.test.secrets")

        logger.info(
            "Connecting",
            password="plain-secret",
            statement="CREATE USER bob WITH password='plain-secret'",
            target="mysql://app:plain-secret@db:3306/orders",
        )

        entry = log_output.entries[-1]
        assert "plain-secret" not in str(entry)
        assert entry["password"] == "***"

    def test_operation_logging(self, log_output):
        logger = StructuredLogger("omnidb.test.operation")

        context = logger.log_operation_start("GET_TABLES", config_id="1")
        logger.log_operation_success(context, tables=3)
        logger.log_operation_failure(context, ValueError("bad"), kind="VALIDATION")

        start, success, failure = log_output.entries[-3:]
        assert start["event"] == "Operation started"
        assert start["operation"] == "GET_TABLES"
        assert success["event"] == "Operation completed successfully"
        assert success["operation_id"] == start["operation_id"]
        assert success["tables"] == 3
        assert success["duration_ms"] >= 0
        assert "start_time" not in success
        assert failure["log_level"] == "error"
        assert failure["error_type"] == "ValueError"
        assert failure["kind"] == "VALIDATION"

    def test_set_level(self):
        logger = StructuredLogger("omnidb.test.level", level="WARNING")
        assert logger.get_level() == "WARNING"

        logger.set_level("debug")
        assert logger.get_level() == "DEBUG"

        with pytest.raises(ValueError):
            logger.set_level("LOUD")

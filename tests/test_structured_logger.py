"""
Tests for structured logging.
"""
import io
import json
import logging

import pytest

from shared.monitoring.structured_logger import (
    ContextFilter,
    CustomJsonFormatter,
    log_business_event,
    log_context,
    log_error,
    scan_id_var,
    symbol_var,
)


@pytest.fixture
def json_logger():
    """Logger writing JSON lines to an in-memory stream."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s'))
    handler.addFilter(ContextFilter())

    logger = logging.getLogger("tests.structured")
    logger.handlers = [handler]
    logger.setLevel(logging.INFO)
    logger.propagate = False

    def records():
        return [json.loads(line) for line in stream.getvalue().splitlines()]

    yield logger, records
    logger.handlers = []


class TestStructuredLogger:
    """JSON output and context propagation."""

    def test_context_fields(self, json_logger):
        """Scan and symbol context appear on records logged inside the block."""
        logger, records = json_logger
        with log_context(scan_id="scan-42", symbol="ACME"):
            logger.info("scoring")
        logger.info("outside")

        inside, outside = records()
        assert inside['scan_id'] == "scan-42"
        assert inside['symbol'] == "ACME"
        assert inside['level'] == "INFO"
        assert 'scan_id' not in outside
        assert 'symbol' not in outside

    def test_nested_context_restores(self):
        """Leaving an inner block restores the outer context."""
        with log_context(scan_id="outer"):
            with log_context(symbol="ACME"):
                assert symbol_var.get() == "ACME"
                assert scan_id_var.get() == "outer"
            assert symbol_var.get() is None
        assert scan_id_var.get() is None

    def test_business_event(self, json_logger):
        """Business events carry their extra fields."""
        logger, records = json_logger
        log_business_event(logger, "gem_identified", tier="diamond", confidence=93)

        record = records()[0]
        assert record['event_type'] == "gem_identified"
        assert record['tier'] == "diamond"
        assert record['confidence'] == 93

    def test_log_error(self, json_logger):
        """Errors include type, message and traceback."""
        logger, records = json_logger
        try:
            raise ConnectionError("provider unreachable")
        except ConnectionError as e:
            log_error(logger, e, {"operation": "scan_symbol"})

        record = records()[0]
        assert record['error_type'] == "ConnectionError"
        assert record['operation'] == "scan_symbol"
        assert record['exception']['type'] == "ConnectionError"

from __future__ import annotations

import json
import logging
import sys

import pytest
from loguru import logger
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

from loyalty_wallet.core.logging import configure_logging, configure_logging_from_settings
from loyalty_wallet.core.settings import Settings


@pytest.fixture
def captured():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    lines: list[str] = []
    configure_logging(service_name="loyalty-wallet", environment="staging", version="1.2.3", writer=lines.append)
    yield lines
    logger.remove()
    logger.add(sys.stderr)
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_log_lines_carry_metadata_and_extras(captured) -> None:
    logger.info("Claimed coupon", user_id="member-1", coupon_id="c2")
    logger.debug("Filtered out at INFO")

    assert len(captured) == 1
    payload = json.loads(captured[0])
    assert payload["message"] == "Claimed coupon"
    assert payload["level"] == "info"
    assert payload["service"] == "loyalty-wallet"
    assert payload["environment"] == "staging"
    assert payload["version"] == "1.2.3"
    assert payload["user_id"] == "member-1"
    assert payload["coupon_id"] == "c2"
    assert "trace_id" not in payload


def test_log_lines_include_active_span(captured) -> None:
    span = NonRecordingSpan(
        SpanContext(trace_id=0xABC, span_id=0xDEF, is_remote=False, trace_flags=TraceFlags(TraceFlags.SAMPLED))
    )

    with trace.use_span(span):
        logger.warning("Wallet storage write failed")

    payload = json.loads(captured[-1])
    assert payload["trace_id"] == f"{0xABC:032x}"
    assert payload["span_id"] == f"{0xDEF:016x}"


def test_exceptions_are_reported_by_type(captured) -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        logger.exception("Points spend failed")

    payload = json.loads(captured[-1])
    assert payload["level"] == "error"
    assert payload["exception"] == "RuntimeError"


def test_stdlib_records_are_forwarded(captured) -> None:
    logging.getLogger("loyalty.bridge").warning("bridged %s", "value")

    payload = json.loads(captured[-1])
    assert payload["message"] == "bridged value"
    assert payload["level"] == "warning"


def test_development_defaults_to_debug() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        sink = configure_logging_from_settings(Settings(_env_file=None, environment="development"))
        lines: list[str] = []
        sink._writer = lines.append
        logger.debug("Hydrated coupon wallet", count=1)
        assert json.loads(lines[0])["environment"] == "development"
    finally:
        logger.remove()
        logger.add(sys.stderr)
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

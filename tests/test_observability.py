# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for structured logging and tracing setup.
"""

import json
import logging
import sys

from opentelemetry.sdk.trace import TracerProvider

from surveying.observability import StructuredFormatter, setup_observability, setup_structured_logging


def make_record(message="Survey published", extra_fields=None, exc_info=None):
    record = logging.LogRecord(
        name="surveying.models.survey",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=exc_info
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestStructuredFormatter:
    """Test JSON log rendering."""

    def setup_method(self):
        """Set up formatter."""
        self.formatter = StructuredFormatter()

    def test_basic_fields(self):
        """Test the standard entry fields."""
        entry = json.loads(self.formatter.format(make_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "surveying.models.survey"
        assert entry["message"] == "Survey published"
        assert "timestamp" in entry
        assert "trace_id" not in entry

    def test_extra_fields_are_merged(self):
        """Test that extra fields become top-level keys."""
        record = make_record(extra_fields={"survey_id": "survey-1", "attempt_number": 2})

        entry = json.loads(self.formatter.format(record))

        assert entry["survey_id"] == "survey-1"
        assert entry["attempt_number"] == 2

    def test_exception_is_rendered(self):
        """Test exception formatting."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        entry = json.loads(self.formatter.format(record))

        assert "ValueError: boom" in entry["exception"]

    def test_trace_correlation(self):
        """Test trace and span ids inside an active span."""
        tracer = TracerProvider().get_tracer(__name__)

        with tracer.start_as_current_span("test-span") as span:
            entry = json.loads(self.formatter.format(make_record()))
            context = span.get_span_context()

        assert entry["trace_id"] == format(context.trace_id, "032x")
        assert entry["span_id"] == format(context.span_id, "016x")


class TestSetup:
    """Test observability setup."""

    def test_logging_levels(self):
        """Test environment-specific log levels."""
        setup_structured_logging('production')
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger('pika').level == logging.ERROR

        setup_structured_logging('development')
        assert logging.getLogger().level == logging.DEBUG
        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

    def test_tracing_disabled(self, monkeypatch):
        """Test that tracing can be switched off."""
        monkeypatch.setenv('OTEL_ENABLED', 'false')

        assert setup_observability() is None

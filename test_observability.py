"""
Observability Tests

Validates the observability stack:
1. Metrics collection (reconciliation counters, timing samples)
2. Structured logging with correlation IDs
3. Correlation context carried through a reconciliation pass
"""

import json
import logging

import pytest


def test_observability_imports():
    """Verify all observability names import correctly."""
    from core.observability import (
        MetricsCollector, get_metrics,
        record_reconciliation_completed, record_reconciliation_failed,
        record_processing_time,
        get_logger, configure_logging, CorrelationContext, with_correlation,
    )
    assert MetricsCollector is not None
    assert get_metrics is not None
    assert CorrelationContext is not None


class TestMetricsCollector:
    """Test the metrics collection system."""

    def test_singleton_instance(self):
        """MetricsCollector returns same instance."""
        from core.observability.metrics import MetricsCollector
        m1 = MetricsCollector.instance()
        m2 = MetricsCollector.instance()
        assert m1 is m2

    def test_reconciliation_counters(self):
        """Track completed/failed/anomaly counts."""
        from core.observability.metrics import (
            get_metrics,
            record_reconciliation_completed,
            record_reconciliation_failed,
        )

        record_reconciliation_completed(1, 0, lines_by_status={"OK": 3})
        record_reconciliation_completed(
            2, 2,
            alerts_by_kind={"PRICE_VARIANCE": 1, "UNKNOWN_PRODUCT": 1},
            lines_by_status={"PRICE_VARIANCE": 1, "UNCONTROLLED": 1},
            duration_ms=4.0,
        )
        record_reconciliation_failed(3, "database is locked")

        summary = get_metrics().get_summary()["reconciliation"]
        assert summary["completed"] == 2
        assert summary["failed"] == 1
        assert summary["anomalies"] == 1
        assert summary["alerts"] == 2
        assert summary["alerts_by_kind"] == {"PRICE_VARIANCE": 1, "UNKNOWN_PRODUCT": 1}
        assert summary["lines_by_status"] == {"OK": 3, "PRICE_VARIANCE": 1, "UNCONTROLLED": 1}
        assert summary["last_failure"]["note_id"] == 3
        assert summary["last_failure"]["error"] == "database is locked"

    def test_reset_clears_everything(self):
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector.instance()

        mc.record_reconciliation_completed(1, 4, duration_ms=2.0)
        mc.reset()

        summary = mc.get_summary()
        assert summary["reconciliation"]["completed"] == 0
        assert summary["reconciliation"]["alerts"] == 0
        assert summary["timings"]["by_stage"] == {}

    def test_timing_percentile_calculation(self):
        """Calculate p95 timing correctly."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector.instance()

        for i in range(1, 101):
            mc.record_processing_time("reconciliation", i)

        stats = mc.get_timing_stats("reconciliation")

        assert 49 <= stats["average_ms"] <= 52
        assert 93 <= stats["p95_ms"] <= 97
        assert stats["sample_count"] == 100


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_correlation_context_creation(self):
        """Create correlation context with all fields."""
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(
            delivery_note_id=42,
            establishment_id=3,
            workflow_id="delivery-note-42-validation",
            activity_name="reconcile_delivery_note",
        )

        assert ctx.to_dict() == {
            "delivery_note_id": 42,
            "establishment_id": 3,
            "workflow_id": "delivery-note-42-validation",
            "activity_name": "reconcile_delivery_note",
        }

    def test_merge_keeps_existing_values(self):
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(delivery_note_id=42).merge(line_id=7, supplier_id=None)

        assert ctx.delivery_note_id == 42
        assert ctx.line_id == 7
        assert ctx.supplier_id is None

    def test_context_var_isolation(self):
        """with_correlation restores the previous context on exit."""
        from core.observability.logging import get_correlation_context, with_correlation

        assert get_correlation_context().delivery_note_id is None

        with with_correlation(delivery_note_id=42):
            with with_correlation(line_id=7):
                inner_ctx = get_correlation_context()
                assert inner_ctx.delivery_note_id == 42
                assert inner_ctx.line_id == 7
            assert get_correlation_context().line_id is None

        assert get_correlation_context().delivery_note_id is None

    def test_structured_formatter_json_output(self):
        """StructuredFormatter outputs valid JSON."""
        from core.observability.logging import StructuredFormatter, with_correlation

        formatter = StructuredFormatter()

        with with_correlation(delivery_note_id=42):
            record = logging.LogRecord(
                name="reconciliation.engine",
                level=logging.INFO,
                pathname="engine.py",
                lineno=10,
                msg="Reconciliation finished",
                args=(),
                exc_info=None,
            )
            record.extra_fields = {"alert_count": 2}

            data = json.loads(formatter.format(record))

        assert data["message"] == "Reconciliation finished"
        assert data["level"] == "INFO"
        assert data["delivery_note_id"] == 42
        assert data["alert_count"] == 2

    def test_human_readable_formatter(self):
        from core.observability.logging import HumanReadableFormatter, with_correlation

        formatter = HumanReadableFormatter()

        with with_correlation(delivery_note_id=42, line_id=7):
            record = logging.LogRecord("storage", logging.WARNING, "x.py", 1, "Line has alerts", (), None)
            record.extra_fields = {"kinds": "PRICE_VARIANCE"}
            output = formatter.format(record)

        assert "[note:42/line:7]" in output
        assert output.endswith("Line has alerts kinds=PRICE_VARIANCE")

    def test_correlated_logger_attaches_extra_fields(self):
        from core.observability.logging import get_logger

        captured = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                captured.append(record)

        logger = get_logger("test.observability.capture")
        handler = ListHandler()
        logging.getLogger("test.observability.capture").addHandler(handler)
        try:
            logger.setLevel(logging.DEBUG)
            logger.info("Reconciliation started", extra_fields={"line_count": 3})
        finally:
            logging.getLogger("test.observability.capture").removeHandler(handler)

        assert captured[-1].getMessage() == "Reconciliation started"
        assert captured[-1].extra_fields == {"line_count": 3}


class TestReconciliationLogging:
    """Correlation context carried through a reconciliation pass."""

    def test_engine_logs_with_note_context(self, make_line, make_note):
        from core.observability.logging import StructuredFormatter
        from reconciliation.engine import ReconciliationEngine
        from conftest import RecordingCatalog

        formatter = StructuredFormatter()
        lines = []

        class JsonListHandler(logging.Handler):
            def emit(self, record):
                lines.append(json.loads(formatter.format(record)))

        handler = JsonListHandler()
        engine_logger = logging.getLogger("reconciliation.engine")
        engine_logger.addHandler(handler)
        try:
            note = make_note([make_line(None)], id=42)
            ReconciliationEngine(RecordingCatalog()).reconcile(note)
        finally:
            engine_logger.removeHandler(handler)

        finished = [entry for entry in lines if entry["message"] == "Reconciliation finished"]
        assert finished
        assert finished[0]["delivery_note_id"] == 42
        assert finished[0]["alert_count"] == 1
        assert finished[0]["note_status"] == "ANOMALY"

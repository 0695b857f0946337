"""
Observability Validation Test

This test validates the observability stack:
1. Metrics collection works (resolutions by strategy, conflicts, store errors, timings)
2. Structured logging with correlation IDs works
3. Resolver calls attach the resolution scope to their log records

Pass criteria: every log line of a resolution call can be traced to its tenant/company.
"""

import asyncio
import json
import logging


def test_observability_imports():
    """Verify all observability modules import correctly."""
    from core.observability import (
        MetricsCollector, get_metrics,
        record_resolution, record_conflict, record_store_error,
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

    def test_resolution_counts(self):
        """Track resolutions by kind and strategy."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        mc.record_resolution("customer", "ALIAS", duration_ms=1.0)
        mc.record_resolution("customer", "ALIAS", duration_ms=2.0)
        mc.record_resolution("vendor", "CREATED", duration_ms=3.0)

        summary = mc.get_summary()
        assert summary["resolutions"]["total"] == 3
        assert summary["resolutions"]["by_kind"]["customer"]["ALIAS"] == 2
        assert mc.get_strategy_count("vendor", "CREATED") == 1
        assert mc.get_strategy_count("vendor", "FUZZY") == 0

    def test_conflicts_and_store_errors(self):
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        mc.record_conflict("customer")
        mc.record_store_error("customer.resolve")
        mc.record_store_error("customer.resolve")

        summary = mc.get_summary()
        assert summary["resolutions"]["conflicts"] == 1
        assert summary["resolutions"]["store_errors"] == 2
        assert summary["resolutions"]["errors_by_operation"] == {"customer.resolve": 2}

    def test_module_helpers_use_singleton(self):
        from core.observability.metrics import get_metrics, record_conflict
        before = get_metrics().get_summary()["resolutions"]["conflicts"]
        record_conflict("vendor")
        assert get_metrics().get_summary()["resolutions"]["conflicts"] == before + 1

    def test_timing_percentile_calculation(self):
        """Calculate p95 timing correctly."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        # Add 100 samples: 1-100ms
        for i in range(1, 101):
            mc.record_resolution("customer", "NONE", duration_ms=i)

        stats = mc.get_timing_stats("resolve.customer")

        # Average should be ~50.5
        assert 49 <= stats["average_ms"] <= 52
        # P95 should be ~95
        assert 93 <= stats["p95_ms"] <= 97
        assert stats["sample_count"] == 100


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_correlation_context_creation(self):
        """Create correlation context with all fields."""
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(
            tenant_id="tenant-a",
            company_id="company-x",
            counterparty_kind="customer",
            document_id="doc-1",
            workflow_id="wf-abc",
            activity_name="provision_counterparty",
        )

        assert ctx.tenant_id == "tenant-a"
        assert ctx.to_dict()["document_id"] == "doc-1"
        assert "request_id" not in ctx.to_dict()

    def test_context_var_isolation(self):
        """with_correlation restores the previous context on exit."""
        from core.observability.logging import get_correlation_context, with_correlation

        assert get_correlation_context().tenant_id is None

        with with_correlation(tenant_id="tenant-a"):
            with with_correlation(company_id="company-x"):
                inner_ctx = get_correlation_context()
                assert inner_ctx.tenant_id == "tenant-a"
                assert inner_ctx.company_id == "company-x"
            assert get_correlation_context().company_id is None

        assert get_correlation_context().tenant_id is None

    def test_structured_formatter_json_output(self):
        """StructuredFormatter outputs valid JSON."""
        from core.observability.logging import StructuredFormatter, with_correlation

        formatter = StructuredFormatter()

        with with_correlation(tenant_id="tenant-a", company_id="company-x"):
            record = logging.LogRecord(
                name="test",
                level=logging.INFO,
                pathname="test.py",
                lineno=10,
                msg="Test message",
                args=(),
                exc_info=None,
            )
            record.extra_fields = {"confidence": 0.95}

            data = json.loads(formatter.format(record))

            assert data["message"] == "Test message"
            assert data["tenant_id"] == "tenant-a"
            assert data["company_id"] == "company-x"
            assert data["confidence"] == 0.95

    def test_human_readable_formatter_scope(self):
        """Tenant-wide scope shows as tenant/*."""
        from core.observability.logging import HumanReadableFormatter, with_correlation

        formatter = HumanReadableFormatter()
        record = logging.LogRecord("test", logging.INFO, "test.py", 1, "Resolved", (), None)

        with with_correlation(tenant_id="tenant-a", document_id="doc-9"):
            line = formatter.format(record)

        assert "[tenant-a/*/doc:doc-9]" in line
        assert line.endswith("Resolved")


class _CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        from core.observability.logging import get_correlation_context
        self.records.append((record, get_correlation_context()))


class TestResolverLogging:
    """Resolver log records carry the resolution scope."""

    def test_provision_logs_with_scope(self):
        from contact_resolver import CounterpartyKind, CustomerResolver, in_memory_stores
        from core.observability.metrics import MetricsCollector

        handler = _CaptureHandler()
        logger = logging.getLogger("contact_resolver.resolver")
        previous_level = logger.level
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)
        try:
            contacts, aliases = in_memory_stores(CounterpartyKind.CUSTOMER)
            resolver = CustomerResolver(contacts, aliases, metrics=MetricsCollector())
            asyncio.run(resolver.get_or_create_customer_contact("tenant-a", "company-x", "Acme Trading"))
        finally:
            logger.removeHandler(handler)
            logger.setLevel(previous_level)

        created = [(r, ctx) for r, ctx in handler.records if r.getMessage().startswith("Created customer contact")]
        assert len(created) == 1
        record, ctx = created[0]
        assert ctx.tenant_id == "tenant-a"
        assert ctx.company_id == "company-x"
        assert ctx.counterparty_kind == "customer"
        assert "contact_id" in record.extra_fields

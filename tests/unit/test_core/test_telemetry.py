"""Unit tests for the ledger counters."""
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from finance_ledger.core.telemetry import LedgerInstruments, get_instruments


def collect_points(reader: InMemoryMetricReader) -> dict:
    points = {}
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                for point in metric.data.data_points:
                    points[(metric.name, tuple(sorted(point.attributes.items())))] = point.value
    return points


def test_counters_are_labelled():
    reader = InMemoryMetricReader()
    instruments = LedgerInstruments(MeterProvider(metric_readers=[reader]).get_meter("test"))

    instruments.record_resolution("stale")
    instruments.record_resolution("stale")
    instruments.record_resolution("fresh")
    instruments.record_provider_failure("USD")
    instruments.record_transfer(same_currency=False)

    points = collect_points(reader)

    assert points[("ledger.rate.resolutions", (("rate.source", "stale"),))] == 2
    assert points[("ledger.rate.resolutions", (("rate.source", "fresh"),))] == 1
    assert points[("ledger.rate.provider_failures", (("rate.base_currency", "USD"),))] == 1
    assert points[("ledger.transfers.created", (("transfer.same_currency", False),))] == 1


def test_instruments_are_shared():
    assert get_instruments() is get_instruments()

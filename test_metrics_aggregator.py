# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
KPI aggregation: percentiles, MTTR, SLA compliance and filtering.
Run:  pytest test_metrics_aggregator.py -v
"""
from datetime import timedelta

import pytest

from conftest import API, BASE, BILLING, PAYMENTS, PLATFORM
from ims.core.errors import ValidationError
from ims.models.domain import ReportFilter
from ims.services.metrics_aggregator import MetricsAggregator, SlaPolicy, mttr_stats, percentile

SLA = {"SEV1": 3600, "SEV2": 4 * 3600, "SEV3": 24 * 3600, "SEV4": 72 * 3600}


@pytest.fixture
def aggregator(repo, clock):
    clock.now = BASE + timedelta(days=30)
    return MetricsAggregator(repo, sla=SlaPolicy(SLA), clock=clock)


class TestPercentile:
    def test_reference_sample(self):
        stats = mttr_stats([1800, 7200, 14400])
        assert stats.avg == 7800
        assert stats.median == 7200
        assert stats.p90 == pytest.approx(12960)

    def test_unsorted_input(self):
        assert mttr_stats([14400, 1800, 7200]).p90 == pytest.approx(12960)

    def test_empty_sample(self):
        stats = mttr_stats([])
        assert stats.avg is None
        assert stats.median is None
        assert stats.p90 is None

    def test_single_value(self):
        stats = mttr_stats([42])
        assert stats.avg == stats.median == stats.p90 == 42

    def test_interpolates_between_ranks(self):
        assert percentile([10, 20, 30, 40], 0.5) == pytest.approx(25)
        assert percentile([10, 20, 30, 40], 0.9) == pytest.approx(37)

    def test_bounds(self):
        assert percentile([1, 2, 3], 0.0) == 1
        assert percentile([1, 2, 3], 1.0) == 3
        with pytest.raises(ValueError):
            percentile([1, 2, 3], 1.5)


class TestSlaPolicy:
    def test_targets(self):
        policy = SlaPolicy(SLA)
        assert policy.target_seconds("SEV1") == 3600
        assert policy.target_seconds("SEV4") == 72 * 3600

    def test_default_targets_from_settings(self):
        policy = SlaPolicy()
        assert policy.target_seconds("SEV1") == 45 * 60
        assert policy.target_seconds("SEV2") == 2 * 3600
        assert policy.target_seconds("SEV3") == 8 * 3600
        assert policy.target_seconds("SEV4") == 24 * 3600


class TestGetKpis:
    def test_counts_and_mttr(self, aggregator, seed_incident):
        seed_incident(BASE, status="NEW")
        seed_incident(BASE, status="ON_HOLD")
        seed_incident(BASE, status="RESOLVED", resolved_at=BASE + timedelta(seconds=1800))
        seed_incident(BASE, status="CLOSED", resolved_at=BASE + timedelta(seconds=7200),
                      closed_at=BASE + timedelta(days=1))
        seed_incident(BASE, status="REOPENED", resolved_at=BASE + timedelta(seconds=14400))

        kpis = aggregator.get_kpis(ReportFilter())

        assert kpis.open_count == 3
        assert kpis.resolved_count == 3
        assert kpis.closed_count == 1
        assert kpis.mttr_seconds.avg == 7800
        assert kpis.mttr_seconds.median == 7200
        assert kpis.mttr_seconds.p90 == pytest.approx(12960)

    def test_sla_compliance(self, aggregator, seed_incident):
        seed_incident(BASE, severity="SEV1", status="RESOLVED",
                      resolved_at=BASE + timedelta(minutes=30))
        seed_incident(BASE, severity="SEV1", status="RESOLVED",
                      resolved_at=BASE + timedelta(hours=2))
        seed_incident(BASE, severity="SEV3", status="CLOSED",
                      resolved_at=BASE + timedelta(hours=20))

        kpis = aggregator.get_kpis(ReportFilter())
        assert kpis.sla_compliance_pct == pytest.approx(66.7)

    def test_empty_scope_is_null(self, aggregator, seed_incident):
        seed_incident(BASE, status="NEW")
        kpis = aggregator.get_kpis(ReportFilter())
        assert kpis.open_count == 1
        assert kpis.resolved_count == 0
        assert kpis.mttr_seconds.avg is None
        assert kpis.sla_compliance_pct is None

    def test_filters(self, aggregator, seed_incident):
        seed_incident(BASE, team_id=PLATFORM, service_id=API, severity="SEV1")
        seed_incident(BASE, team_id=PAYMENTS, service_id=BILLING, severity="SEV2")
        seed_incident(BASE, team_id=PLATFORM, service_id=BILLING, severity="SEV2")

        assert aggregator.get_kpis(ReportFilter(team_id=PLATFORM)).open_count == 2
        assert aggregator.get_kpis(ReportFilter(service_id=BILLING)).open_count == 2
        assert aggregator.get_kpis(ReportFilter(severity="SEV1")).open_count == 1

    def test_range_is_half_open(self, aggregator, seed_incident):
        seed_incident(BASE)
        seed_incident(BASE + timedelta(days=1))
        flt = ReportFilter(date_from=BASE, date_to=BASE + timedelta(days=1))
        assert aggregator.get_kpis(flt).open_count == 1

    def test_last_days(self, aggregator, seed_incident, clock):
        seed_incident(clock.now - timedelta(days=2))
        seed_incident(clock.now - timedelta(days=10))
        assert aggregator.get_kpis(ReportFilter(last_days=7)).open_count == 1

    def test_explicit_range_overrides_last_days(self, aggregator, seed_incident, clock):
        seed_incident(BASE)
        flt = ReportFilter(date_from=BASE, last_days=1)
        assert aggregator.get_kpis(flt).open_count == 1

    def test_inverted_range_rejected(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.get_kpis(ReportFilter(date_from=BASE, date_to=BASE))

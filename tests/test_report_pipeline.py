"""
Tests for report scoping, reductions and the concurrent report pipeline
"""

import asyncio
from datetime import date, datetime
from unittest.mock import AsyncMock, Mock

import pytest

from farmdata.core.config import settings
from farmdata.core.exceptions import ApiTransportError
from farmdata.schemas.common import DataSource
from farmdata.schemas.report import CostAdjustments, ReportDataset, ReportFilterState, ReportMode
from farmdata.services.report_pipeline import (
    BROILER_SOURCES,
    ReportPipeline,
    daily_trend,
    export_csv,
    generic_report,
    mortality_causes,
    normalize_date,
    pick_date_field,
    reduce_report,
    row_in_date_range,
    scope_rows,
)


BATCHES = [
    {"batch_id": 1, "batch_code": "B-1", "current_count": 900, "cost_of_production": 1000, "harvest_revenue": 1500,
     "vaccine_cost_used": 50, "labor_cost_used": 100, "fcr": 1.6, "adg_g": 55, "mortality_rate": 2},
    {"batch_id": 2, "batch_code": "B-2", "current_count": 5000, "cost_of_production": 9000, "harvest_revenue": 100,
     "vaccine_cost_used": 0, "labor_cost_used": 0, "fcr": 3.0, "adg_g": 20, "mortality_rate": 9},
    {"batch_id": 3, "batch_code": "B-3", "current_count": 800, "cost_of_production": 2000, "harvest_revenue": 1800,
     "vaccine_cost_used": 20, "labor_cost_used": 30, "fcr": 1.8, "adg_g": 50, "mortality_rate": 4},
]

DAILY = [
    {"batch_id": 1, "log_date": "2024-01-10", "feed_kg": 100, "mortality_count": 3, "mortality_cause": "HEAT", "avg_weight_kg": 1.2},
    {"batch_id": 1, "log_date": None, "feed_kg": 40, "mortality_count": 0},
    {"batch_id": 2, "log_date": "2024-01-15", "feed_kg": 500, "mortality_count": 50, "mortality_cause": "DISEASE"},
    {"batch_id": 3, "log_date": "2024-01-20", "feed_kg": 60, "mortality_count": 2, "mortality_cause": "", "avg_weight_kg": 1.5},
    {"batch_id": 3, "log_date": "2024-02-05", "feed_kg": 999, "mortality_count": 40, "mortality_cause": "HEAT"},
    {"batch_id": 1, "log_date": "not a date", "feed_kg": 5, "mortality_count": 1, "mortality_cause": "HEAT"},
]

JANUARY = {"from_date": "2024-01-01", "to_date": "2024-01-31"}


def dataset(**rows):
    return ReportDataset(rows=rows, sources={name: DataSource.REMOTE for name in rows})


class TestDates:
    """Date normalisation and the date-range predicate"""

    @pytest.mark.parametrize("value, expected", [
        ("2024-01-10", "2024-01-10"),
        ("2024-01-10 08:30:00", "2024-01-10"),
        ("2024-01-10T23:30:00-02:00", "2024-01-11"),
        ("2024-01-10T01:00:00Z", "2024-01-10"),
        (date(2024, 3, 1), "2024-03-01"),
        (datetime(2024, 3, 1, 22, 0), "2024-03-01"),
        ("", None),
        (None, None),
        ("soon", None),
    ])
    def test_normalize_date(self, value, expected):
        assert normalize_date(value) == expected

    def test_unparseable_or_missing_dates_pass(self):
        assert row_in_date_range({"log_date": "n/a"}, "log_date", "2024-01-01", "2024-01-31")
        assert row_in_date_range({}, "log_date", "2024-01-01", "2024-01-31")

    def test_range_is_inclusive(self):
        assert row_in_date_range({"d": "2024-01-31 23:59:00"}, "d", date(2024, 1, 1), date(2024, 1, 31))
        assert not row_in_date_range({"d": "2024-02-01"}, "d", date(2024, 1, 1), date(2024, 1, 31))

    def test_pick_date_field_preference(self):
        assert pick_date_field(["created_at", "sale_date", "amount"]) == "sale_date"
        assert pick_date_field(["amount"]) is None


class TestScoping:
    """Selection and date scoping"""

    def test_selection_and_dates_combine(self):
        filters = ReportFilterState(selection_ids=[1, 3], **JANUARY)
        scoped = scope_rows(DAILY, filters, "log_date", "batch_id")
        assert [row["feed_kg"] for row in scoped] == [100, 40, 60, 5]

    def test_empty_selection_passes_everything(self):
        scoped = scope_rows(DAILY, ReportFilterState(), "log_date", "batch_id")
        assert len(scoped) == len(DAILY)

    def test_selection_ids_are_positive_integers(self):
        filters = ReportFilterState(selection_ids=["3", "0", -1, "x", 2.0])
        assert filters.selection_ids == {2, 3}
        assert filters.single_selection is None
        assert ReportFilterState(selection_ids=["7"]).single_selection == 7

    def test_default_window(self):
        filters = ReportFilterState.default(today=date(2024, 3, 31))
        assert filters.from_date == date(2024, 3, 1)
        assert filters.to_date == date(2024, 3, 31)
        assert filters.mode == ReportMode.FULL


class TestBroilerReduction:
    """KPIs and series from the scoped subsets"""

    def test_selected_batches_in_january(self):
        filters = ReportFilterState(selection_ids=[1, 3], **JANUARY)
        report = reduce_report(dataset(batches=BATCHES, daily=DAILY, feed=[], harvests=[]), filters)
        summary = report.summary

        assert summary.batch_count == 2
        assert summary.birds_current == 1700
        assert summary.running_cop == 3000
        assert summary.running_revenue == 3300
        assert summary.running_profit == 300
        assert summary.adjusted_cop == 3200
        assert summary.running_profit_adjusted == 100
        assert summary.avg_fcr == pytest.approx(1.7)
        assert summary.avg_adg_g == pytest.approx(52.5)
        assert summary.period_feed_kg == 205

    def test_cost_adjustments_toggle(self):
        filters = ReportFilterState(selection_ids=[1, 3])
        report = reduce_report(
            dataset(batches=BATCHES), filters, adjustments=CostAdjustments(include_vaccine=False)
        )
        assert report.summary.adjusted_cop == 3130
        assert report.summary.running_labor_cost == 130

    def test_revenue_falls_back_to_harvests(self):
        batches = [{"batch_id": 1, "cost_of_production": 100}]
        harvests = [
            {"batch_id": 1, "harvest_date": "2024-01-05", "total_amount": 250, "birds_harvested": 100},
            {"batch_id": 1, "harvest_date": "2024-01-06", "total_amount": 150, "birds_harvested": 40},
        ]
        report = reduce_report(dataset(batches=batches, harvests=harvests), ReportFilterState())
        assert report.summary.running_revenue == 400
        assert report.summary.period_harvest_birds == 140
        assert [row.date for row in report.harvest_trend] == ["2024-01-06", "2024-01-05"]

    def test_feed_logs_take_priority_over_daily_feed(self):
        feed = [{"batch_id": 1, "feed_date": "2024-01-02", "quantity_kg": 70, "total_cost": 35}]
        report = reduce_report(dataset(daily=DAILY[:1], feed=feed), ReportFilterState())
        assert report.summary.period_feed_kg == 70
        assert report.summary.period_feed_cost == 35

    def test_display_mode_never_changes_aggregates(self):
        base = dict(selection_ids=[1, 3], **JANUARY)
        data = dataset(batches=BATCHES, daily=DAILY, feed=[], harvests=[])

        full = reduce_report(data, ReportFilterState(mode="FULL", **base), partial_rows=1)
        partial = reduce_report(data, ReportFilterState(mode="partial", **base), partial_rows=1)

        assert partial.summary == full.summary
        assert partial.daily_trend == full.daily_trend
        assert len(full.display["daily"]) == 4
        assert len(partial.display["daily"]) == 1
        assert len(partial.scoped["daily"]) == 4

    def test_daily_trend_most_recent_first(self):
        trend = daily_trend(DAILY[:4])
        assert [row.date for row in trend] == ["2024-01-20", "2024-01-15", "2024-01-10"]
        assert trend[-1].avg_weight_kg == pytest.approx(1.2)

    def test_daily_trend_window(self):
        rows = [{"log_date": f"2024-01-{day:02d}", "feed_kg": day} for day in range(1, 21)]
        trend = daily_trend(rows)
        assert len(trend) == 14
        assert trend[0].date == "2024-01-20"

    def test_mortality_causes_ranked(self):
        causes = mortality_causes(DAILY)
        assert causes[0].cause == "DISEASE"
        assert causes[0].count == 50
        assert {row.cause: row.count for row in causes}["HEAT"] == 44
        assert {row.cause: row.count for row in causes}["UNSPECIFIED"] == 2

    def test_batch_profit_ranking(self):
        report = reduce_report(dataset(batches=BATCHES), ReportFilterState())
        assert [row.batch_code for row in report.batch_profit] == ["B-1", "B-3", "B-2"]
        assert report.batch_profit[0].profit == 500


class TestGenericReport:
    """Single row-set reports and CSV export"""

    ROWS = [
        {"sale_id": 1, "sale_date": "2024-01-03", "total_amount": 100, "status": "PAID"},
        {"sale_id": 2, "sale_date": "2024-01-04", "total_amount": 50, "status": "PENDING"},
        {"sale_id": 3, "sale_date": "2024-01-05", "total_amount": 25, "status": "PAID"},
        {"sale_id": 4, "sale_date": "2023-12-30", "total_amount": 1000, "status": "PAID"},
    ]

    def test_kpis_use_all_scoped_rows(self):
        filters = ReportFilterState(mode=ReportMode.PARTIAL, status="PAID", **JANUARY)
        report = generic_report(self.ROWS, filters, partial_rows=1)

        assert report.date_field == "sale_date"
        assert report.total_rows == 2
        assert len(report.rows) == 1
        assert report.summary.rows == 2
        assert report.summary.total_value == 125
        assert report.summary.average_value == 62.5
        assert report.summary.status_tagged == 2

    def test_empty_rows(self):
        report = generic_report([], ReportFilterState())
        assert report.total_rows == 0
        assert report.summary.average_value == 0.0

    def test_export_csv(self, tmp_path):
        path = tmp_path / "sales.csv"
        text = export_csv(self.ROWS[:2], ["sale_id", "total_amount"], path)

        assert text.splitlines() == ["sale_id,total_amount", "1,100", "2,50"]
        assert path.read_text(encoding="utf-8") == text


def fake_api(rows_by_table):
    async def get_records(module_key, table, params):
        return {"ok": True, "rows": rows_by_table.get(table, []), "page": 1, "total_pages": 1}

    api = Mock()
    api.get_records = AsyncMock(side_effect=get_records)
    return api


class TestReportPipeline:
    """Concurrent source fetches through the cache-through resolver"""

    def test_single_selection_is_narrowed_server_side(self, resolver, composer):
        pipeline = ReportPipeline(Mock(), resolver, composer)
        filters = ReportFilterState(selection_ids=[3])
        specs = {spec.name: spec for spec in BROILER_SOURCES}

        daily = pipeline.source_params(specs["daily"], filters)
        health = pipeline.source_params(specs["health"], filters)

        assert daily["filter_batch_id"] == 3
        assert daily["sort_by"] == "log_date"
        assert health["filter_target_id"] == 3
        assert health["filter_target_type"] == "BROILER_BATCH"
        assert "filter_batch_id" not in pipeline.source_params(specs["daily"], ReportFilterState(selection_ids=[1, 3]))

    @pytest.mark.asyncio
    async def test_run_fetches_every_source(self, resolver, composer):
        api = fake_api({"broiler_batches": BATCHES, "broiler_daily_logs": DAILY})
        pipeline = ReportPipeline(api, resolver, composer)

        report = await pipeline.run(ReportFilterState(selection_ids=[1, 3], **JANUARY))

        assert api.get_records.await_count == len(BROILER_SOURCES)
        assert set(report.sources) == {spec.name for spec in BROILER_SOURCES}
        assert report.stale is False
        assert report.summary.period_feed_kg == 205
        assert pipeline.report is report

    @pytest.mark.asyncio
    async def test_run_falls_back_to_cached_sources(self, resolver, composer):
        filters = ReportFilterState(**JANUARY)
        await ReportPipeline(fake_api({"broiler_batches": BATCHES}), resolver, composer).run(filters)

        offline = Mock()
        offline.get_records = AsyncMock(side_effect=ApiTransportError("offline"))
        report = await ReportPipeline(offline, resolver, composer).run(filters)

        assert report.stale is True
        assert report.sources["batches"] == DataSource.CACHE
        assert report.summary.batch_count == 3

    @pytest.mark.asyncio
    async def test_uncached_source_failure_propagates(self, resolver, composer):
        offline = Mock()
        offline.get_records = AsyncMock(side_effect=ApiTransportError("offline"))
        with pytest.raises(ApiTransportError):
            await ReportPipeline(offline, resolver, composer).run(ReportFilterState())

    def test_page_sizes_follow_settings(self, resolver, composer, monkeypatch):
        monkeypatch.setattr(settings, "REPORT_PAGE_SIZE", 250)
        monkeypatch.setattr(settings, "REPORT_BATCH_PAGE_SIZE", 75)
        pipeline = ReportPipeline(Mock(), resolver, composer)
        specs = {spec.name: spec for spec in BROILER_SOURCES}

        assert pipeline.source_params(specs["batches"], ReportFilterState())["page_size"] == 75
        assert pipeline.source_params(specs["daily"], ReportFilterState())["page_size"] == 250

    @pytest.mark.asyncio
    async def test_overtaken_run_is_discarded(self, resolver, composer):
        release_first = asyncio.Event()

        async def get_records(module_key, table, params):
            if params.get("filter_batch_id") == 1 or params.get("filter_target_id") == 1:
                await release_first.wait()
            return {"ok": True, "rows": BATCHES if table == "broiler_batches" else []}

        api = Mock()
        api.get_records = AsyncMock(side_effect=get_records)
        pipeline = ReportPipeline(api, resolver, composer)

        slow = asyncio.create_task(pipeline.run(ReportFilterState(selection_ids=[1])))
        await asyncio.sleep(0)
        fast = await pipeline.run(ReportFilterState(selection_ids=[3]))
        release_first.set()
        late = await slow

        assert fast.superseded is False
        assert late.superseded is True
        assert pipeline.report is fast
        assert pipeline.report.filters.selection_ids == {3}
        assert [row.batch_code for row in pipeline.report.batch_profit] == ["B-3"]


class TestTableReport:
    """Per-table reports for modules without a multi-source pipeline"""

    ROWS = [
        {"flock_code": "L-1", "active_birds": 900, "sales_amount": 400, "status": "ACTIVE", "created_at": "2024-01-03"},
        {"flock_code": "L-2", "active_birds": 500, "sales_amount": 100, "status": "CLOSED", "created_at": "2024-01-09"},
    ]

    @pytest.mark.asyncio
    async def test_columns_from_module_layout(self, resolver, composer):
        api = fake_api({"layer_flocks": self.ROWS})
        pipeline = ReportPipeline(api, resolver, composer, module_key="layers")

        report = await pipeline.table_report("layer_flocks", ReportFilterState(**JANUARY))

        assert pipeline.sources == []
        assert report.columns == ["flock_code", "active_birds", "sales_amount", "status"]
        assert report.summary.total_value == 500
        assert report.source == DataSource.REMOTE
        assert pipeline.table_reports["layer_flocks"] is report
        params = api.get_records.await_args.args[2]
        assert params["page_size"] == settings.REPORT_PAGE_SIZE
        assert "filter_batch_id" not in params

    @pytest.mark.asyncio
    async def test_explicit_columns_and_cache_fallback(self, resolver, composer):
        filters = ReportFilterState(**JANUARY)
        await ReportPipeline(fake_api({"layer_flocks": self.ROWS}), resolver, composer, module_key="LAYERS").table_report(
            "layer_flocks", filters
        )
        offline = Mock()
        offline.get_records = AsyncMock(side_effect=ApiTransportError("offline"))

        report = await ReportPipeline(offline, resolver, composer, module_key="LAYERS").table_report(
            "layer_flocks", filters, columns=["flock_code", "created_at"]
        )

        assert report.stale is True
        assert report.date_field == "created_at"
        assert report.total_rows == 2

"""
Report Aggregation Pipeline

Fetches several related entities in parallel under one shared filter, scopes
every row-set by selection and date range, and reduces the scoped subsets into
KPIs, trend series and rankings.

Scoping rules:
- selection: if any ids are selected, a row must carry one of them in the
  source's selection field; an empty selection passes everything
- date range: applied to the source's primary date field; a row whose date is
  missing or unparseable passes
- display mode only truncates the rendered rows; aggregates always use the
  full scoped subsets
"""

import asyncio
import io
import logging
import math
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from farmdata.core import layouts
from farmdata.core.config import settings
from farmdata.core.exceptions import ApiUnavailableError
from farmdata.schemas.report import (
    BatchProfitRow,
    BroilerReport,
    BroilerSummary,
    CostAdjustments,
    DailyTrendRow,
    GenericReport,
    GenericReportSummary,
    MortalityCauseRow,
    ReportDataset,
    ReportFilterState,
    ReportMode,
    ReportSourceSpec,
    RevenueTrendRow,
)
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.query_keys import QueryKeyComposer
from farmdata.services.sequencing import RequestSequencer

logger = logging.getLogger(__name__)

DATE_FIELD_PREFERENCE = [
    "log_date",
    "harvest_date",
    "sale_date",
    "operation_date",
    "transaction_date",
    "feed_date",
    "recorded_at",
    "created_at",
    "start_date",
]

TREND_WINDOW = 14
TOP_CAUSES = 10
TOP_BATCHES = 20
VALUE_COLUMNS = ["amount", "total_amount", "sales_amount", "profitability"]

BROILER_SOURCES = [
    ReportSourceSpec(name="batches", table="broiler_batches", selection_field="batch_id",
                     date_field=None, header=True, sort_by="batch_id"),
    ReportSourceSpec(name="daily", table="broiler_daily_logs", date_field="log_date", sort_by="log_date"),
    ReportSourceSpec(name="feed", table="broiler_feed_logs", date_field="feed_date", sort_by="feed_date"),
    ReportSourceSpec(name="health", table="health_records", selection_field="target_id",
                     date_field="recorded_at", sort_by="recorded_at",
                     fixed_filters={"module_key": "BROILERS", "target_type": "BROILER_BATCH"}),
    ReportSourceSpec(name="vaccinations", table="broiler_vaccinations", date_field="scheduled_date",
                     sort_by="scheduled_date"),
    ReportSourceSpec(name="harvests", table="broiler_harvests", date_field="harvest_date", sort_by="harvest_date"),
]

# Multi-source reports by module; other modules report on one table at a time
MODULE_SOURCES = {"BROILERS": BROILER_SOURCES}


# Value helpers

def to_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Any) -> int:
    return int(to_number(value))


def normalize_date(value: Any) -> Optional[str]:
    """Calendar day as YYYY-MM-DD (UTC for zoned timestamps), or None"""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value.isoformat()
    else:
        raw = str(value).strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            try:
                return date.fromisoformat(raw[:10]).isoformat()
            except ValueError:
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def pick_date_field(columns: Iterable[str]) -> Optional[str]:
    available = set(columns or [])
    for candidate in DATE_FIELD_PREFERENCE:
        if candidate in available:
            return candidate
    return None


def row_in_date_range(
    row: Mapping[str, Any],
    date_field: Optional[str],
    from_date: Optional[Union[date, str]] = None,
    to_date: Optional[Union[date, str]] = None,
) -> bool:
    if not date_field:
        return True
    day = normalize_date(row.get(date_field))
    if day is None:
        return True
    start = normalize_date(from_date)
    end = normalize_date(to_date)
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def row_in_selection(row: Mapping[str, Any], selection_field: Optional[str], selection_ids: Iterable[int]) -> bool:
    selection_ids = set(selection_ids or [])
    if not selection_ids or not selection_field:
        return True
    return to_int(row.get(selection_field)) in selection_ids


def scope_rows(
    rows: Iterable[Mapping[str, Any]],
    filters: ReportFilterState,
    date_field: Optional[str] = None,
    selection_field: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Rows passing both the selection and the date-range predicates"""
    return [
        dict(row) for row in rows or []
        if row_in_selection(row, selection_field, filters.selection_ids)
        and row_in_date_range(row, date_field, filters.from_date, filters.to_date)
    ]


def display_rows(rows: Sequence[Dict[str, Any]], mode: ReportMode, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    limit = limit or settings.REPORT_PARTIAL_ROWS
    if mode == ReportMode.PARTIAL:
        return list(rows[:limit])
    return list(rows)


def _sum(rows: Iterable[Mapping[str, Any]], field: str) -> float:
    return sum(to_number(row.get(field)) for row in rows)


def _avg(rows: Sequence[Mapping[str, Any]], field: str) -> float:
    if not rows:
        return 0.0
    return _sum(rows, field) / len(rows)


# Broiler reductions

def summarize_broilers(
    scoped: Mapping[str, List[Dict[str, Any]]],
    adjustments: Optional[CostAdjustments] = None,
) -> BroilerSummary:
    adjustments = adjustments or CostAdjustments()
    batches = scoped.get("batches", [])
    daily = scoped.get("daily", [])
    feed = scoped.get("feed", [])
    harvests = scoped.get("harvests", [])

    revenue_from_batches = _sum(batches, "harvest_revenue")
    revenue_from_harvests = _sum(harvests, "total_amount")
    running_revenue = revenue_from_batches if revenue_from_batches > 0 else revenue_from_harvests

    running_cop = _sum(batches, "cost_of_production")
    vaccine_cost = _sum(batches, "vaccine_cost_used")
    labor_cost = _sum(batches, "labor_cost_used")
    adjusted_cop = running_cop
    if adjustments.include_vaccine:
        adjusted_cop += vaccine_cost
    if adjustments.include_labor:
        adjusted_cop += labor_cost

    period_feed_kg = _sum(feed, "quantity_kg") or _sum(daily, "feed_kg")

    return BroilerSummary(
        batch_count=len(batches),
        birds_current=sum(to_int(row.get("current_count")) for row in batches),
        running_cop=running_cop,
        running_vaccine_cost=vaccine_cost,
        running_labor_cost=labor_cost,
        adjusted_cop=adjusted_cop,
        running_revenue=running_revenue,
        running_profit=running_revenue - running_cop,
        running_profit_adjusted=running_revenue - adjusted_cop,
        avg_fcr=_avg(batches, "fcr"),
        avg_adg_g=_avg(batches, "adg_g"),
        avg_mortality_rate=_avg(batches, "mortality_rate"),
        period_feed_kg=period_feed_kg,
        period_feed_cost=_sum(feed, "total_cost") + _sum(daily, "feed_cost"),
        period_harvest_birds=sum(to_int(row.get("birds_harvested")) for row in harvests),
        period_harvest_revenue=revenue_from_harvests,
    )


def daily_trend(daily: Iterable[Mapping[str, Any]], window: int = TREND_WINDOW) -> List[DailyTrendRow]:
    """Per-day feed and mortality sums with mean weight, most recent days first"""
    grouped: Dict[str, Dict[str, float]] = defaultdict(lambda: {"feed_kg": 0.0, "mortality": 0, "weight": 0.0, "n": 0})
    for row in daily:
        day = normalize_date(row.get("log_date"))
        if not day:
            continue
        bucket = grouped[day]
        bucket["feed_kg"] += to_number(row.get("feed_kg"))
        bucket["mortality"] += to_int(row.get("mortality_count"))
        bucket["weight"] += to_number(row.get("avg_weight_kg"))
        bucket["n"] += 1

    return [
        DailyTrendRow(
            date=day,
            feed_kg=bucket["feed_kg"],
            mortality=int(bucket["mortality"]),
            avg_weight_kg=bucket["weight"] / bucket["n"] if bucket["n"] else 0.0,
        )
        for day, bucket in sorted(grouped.items(), reverse=True)[:window]
    ]


def mortality_causes(daily: Iterable[Mapping[str, Any]], top: int = TOP_CAUSES) -> List[MortalityCauseRow]:
    counts: Dict[str, int] = defaultdict(int)
    for row in daily:
        count = to_int(row.get("mortality_count"))
        if count < 1:
            continue
        cause = str(row.get("mortality_cause") or "").strip() or "UNSPECIFIED"
        counts[cause] += count
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:top]
    return [MortalityCauseRow(cause=cause, count=count) for cause, count in ranked]


def harvest_trend(harvests: Iterable[Mapping[str, Any]], window: int = TREND_WINDOW) -> List[RevenueTrendRow]:
    revenue: Dict[str, float] = defaultdict(float)
    for row in harvests:
        day = normalize_date(row.get("harvest_date"))
        if not day:
            continue
        revenue[day] += to_number(row.get("total_amount"))
    return [
        RevenueTrendRow(date=day, revenue=amount)
        for day, amount in sorted(revenue.items(), reverse=True)[:window]
    ]


def batch_profit_ranking(batches: Iterable[Mapping[str, Any]], top: int = TOP_BATCHES) -> List[BatchProfitRow]:
    ranked = []
    for row in batches:
        revenue = to_number(row.get("harvest_revenue"))
        cost = to_number(row.get("cost_of_production"))
        code = str(row.get("batch_code") or f"#{to_int(row.get('batch_id'))}")
        ranked.append(BatchProfitRow(batch_code=code, revenue=revenue, cost=cost, profit=revenue - cost))
    ranked.sort(key=lambda item: item.profit, reverse=True)
    return ranked[:top]


def reduce_report(
    dataset: ReportDataset,
    filters: ReportFilterState,
    sources: Sequence[ReportSourceSpec] = BROILER_SOURCES,
    adjustments: Optional[CostAdjustments] = None,
    partial_rows: Optional[int] = None,
) -> BroilerReport:
    """Scope every source, then derive KPIs from the full scoped subsets"""
    adjustments = adjustments or CostAdjustments()
    scoped = {
        spec.name: scope_rows(dataset.rows.get(spec.name, []), filters, spec.date_field, spec.selection_field)
        for spec in sources
    }

    return BroilerReport(
        filters=filters,
        adjustments=adjustments,
        summary=summarize_broilers(scoped, adjustments),
        daily_trend=daily_trend(scoped.get("daily", [])),
        mortality_causes=mortality_causes(scoped.get("daily", [])),
        harvest_trend=harvest_trend(scoped.get("harvests", [])),
        batch_profit=batch_profit_ranking(scoped.get("batches", [])),
        scoped=scoped,
        display={name: display_rows(rows, filters.mode, partial_rows) for name, rows in scoped.items()},
        sources=dict(dataset.sources),
        stale=dataset.stale,
    )


# Generic reports

def summarize_rows(rows: Sequence[Mapping[str, Any]]) -> GenericReportSummary:
    total = sum(sum(to_number(row.get(column)) for column in VALUE_COLUMNS) for row in rows)
    return GenericReportSummary(
        rows=len(rows),
        total_value=total,
        average_value=total / len(rows) if rows else 0.0,
        status_tagged=sum(1 for row in rows if str(row.get("status") or "").strip()),
    )


def generic_report(
    rows: Sequence[Mapping[str, Any]],
    filters: ReportFilterState,
    columns: Optional[Sequence[str]] = None,
    partial_rows: Optional[int] = None,
) -> GenericReport:
    """Date/status-scoped report over one row-set; KPIs ignore the display mode"""
    columns = list(columns or (list(rows[0].keys()) if rows else []))
    date_field = pick_date_field(columns)
    scoped = [
        row for row in scope_rows(rows, filters, date_field)
        if not filters.status or str(row.get("status") or "") == filters.status
    ]
    return GenericReport(
        filters=filters,
        date_field=date_field,
        columns=columns,
        summary=summarize_rows(scoped),
        rows=display_rows(scoped, filters.mode, partial_rows),
        total_rows=len(scoped),
    )


def export_csv(rows: Sequence[Mapping[str, Any]], columns: Optional[Sequence[str]] = None, path=None) -> str:
    """Rows as CSV text; also written to ``path`` when given"""
    df = pd.DataFrame(list(rows), columns=list(columns) if columns else None)
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    text = buffer.getvalue()
    if path is not None:
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
    return text


class ReportPipeline:
    """Fetches report sources concurrently and reduces them"""

    def __init__(
        self,
        api: FarmApiClient,
        resolver: CacheThroughResolver,
        composer: QueryKeyComposer,
        module_key: str = "BROILERS",
        sources: Optional[Sequence[ReportSourceSpec]] = None,
        sequencer: Optional[RequestSequencer] = None,
        max_age_ms: Optional[int] = None,
        partial_rows: Optional[int] = None,
    ):
        self.api = api
        self.resolver = resolver
        self.composer = composer
        self.module_key = module_key.upper()
        self.sources = list(sources if sources is not None else MODULE_SOURCES.get(self.module_key, []))
        self.sequencer = sequencer or RequestSequencer()
        self.max_age_ms = max_age_ms or settings.CACHE_TTL_REPORTS_MS
        self.partial_rows = partial_rows or settings.REPORT_PARTIAL_ROWS
        self.report: Optional[BroilerReport] = None
        self.table_reports: Dict[str, GenericReport] = {}

    @property
    def target(self) -> str:
        return f"report:{self.module_key}"

    def source_params(self, spec: ReportSourceSpec, filters: ReportFilterState) -> Dict[str, Any]:
        page_size = spec.page_size or (settings.REPORT_BATCH_PAGE_SIZE if spec.header else settings.REPORT_PAGE_SIZE)
        params: Dict[str, Any] = {"page": 1, "page_size": page_size}
        if spec.sort_by:
            params["sort_by"] = spec.sort_by
            params["sort_dir"] = spec.sort_dir
        for field, value in spec.fixed_filters.items():
            params[f"filter_{field}"] = value
        # A single selected id is narrowed server-side; larger selections are scoped locally
        single = filters.single_selection
        if single is not None and spec.selection_field:
            params[f"filter_{spec.selection_field}"] = single
        return params

    async def _fetch_source(self, spec: ReportSourceSpec, filters: ReportFilterState):
        params = self.source_params(spec, filters)

        async def fetch():
            body = await self.api.get_records(self.module_key, spec.table, params)
            if not isinstance(body.get("rows"), list):
                raise ApiUnavailableError(f"Report source {spec.table} returned no rows")
            return body

        key = self.composer.report_source(self.module_key, spec.table, params)
        return await self.resolver.resolve(key, self.max_age_ms, fetch)

    async def fetch(self, filters: ReportFilterState) -> ReportDataset:
        """Resolve every source in parallel; any unrecoverable failure propagates"""
        resolved = await asyncio.gather(*(self._fetch_source(spec, filters) for spec in self.sources))
        dataset = ReportDataset()
        for spec, result in zip(self.sources, resolved):
            dataset.rows[spec.name] = list(result.payload.get("rows") or [])
            dataset.sources[spec.name] = result.source
        return dataset

    def reduce(
        self,
        dataset: ReportDataset,
        filters: ReportFilterState,
        adjustments: Optional[CostAdjustments] = None,
    ) -> BroilerReport:
        return reduce_report(dataset, filters, self.sources, adjustments, self.partial_rows)

    async def run(
        self,
        filters: Optional[ReportFilterState] = None,
        adjustments: Optional[CostAdjustments] = None,
    ) -> BroilerReport:
        filters = filters or ReportFilterState.default()
        token = self.sequencer.issue(self.target)
        dataset = await self.fetch(filters)
        report = self.reduce(dataset, filters, adjustments)
        if self.sequencer.is_latest(self.target, token):
            self.report = report
        else:
            report.superseded = True
        logger.info(
            f"{self.module_key} report: {report.summary.batch_count} batches, "
            f"revenue {report.summary.running_revenue:.2f}, stale={report.stale}"
        )
        return report

    async def table_report(
        self,
        table: str,
        filters: Optional[ReportFilterState] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> GenericReport:
        """
        Date/status-scoped report over one table of the module. Columns default
        to the module's report layout.
        """
        filters = filters or ReportFilterState.default()
        target = f"{self.target}:{table}"
        token = self.sequencer.issue(target)

        spec = ReportSourceSpec(name=table, table=table, selection_field=None)
        resolved = await self._fetch_source(spec, filters)
        rows = list(resolved.payload.get("rows") or [])
        if columns is None:
            present = set(rows[0].keys()) if rows else set()
            columns = [c for c in layouts.report_columns(self.module_key) if not present or c in present] or None

        report = generic_report(rows, filters, columns, self.partial_rows)
        report.source = resolved.source
        report.stale = resolved.stale
        if self.sequencer.is_latest(target, token):
            self.table_reports[table] = report
        else:
            report.superseded = True
        logger.info(f"{self.module_key}/{table} report: {report.total_rows} rows, stale={report.stale}")
        return report

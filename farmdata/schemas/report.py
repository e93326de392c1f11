"""
Schemas for report filters and report output

KPIs and trend rows are recomputed on every run and never cached.
"""

from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from pydantic import BaseModel, Field, validator

from farmdata.schemas.common import DataSource


class ReportMode(str, Enum):
    """Display mode; never changes which rows feed the aggregates"""
    FULL = "FULL"
    PARTIAL = "PARTIAL"


def _parse_day(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


class ReportFilterState(BaseModel):
    """Date window, batch selection and display mode shared by every source"""
    mode: ReportMode = Field(default=ReportMode.FULL)
    from_date: Optional[date] = Field(default=None)
    to_date: Optional[date] = Field(default=None)
    selection_ids: Set[int] = Field(default_factory=set)
    status: Optional[str] = Field(default=None)

    @validator("mode", pre=True)
    def parse_mode(cls, v):
        if isinstance(v, ReportMode):
            return v
        return ReportMode.PARTIAL if str(v or "").strip().upper() == "PARTIAL" else ReportMode.FULL

    @validator("from_date", "to_date", pre=True)
    def parse_dates(cls, v):
        return _parse_day(v)

    @validator("selection_ids", pre=True)
    def positive_ids(cls, v):
        ids = set()
        for item in v or []:
            try:
                number = int(float(str(item).strip()))
            except (TypeError, ValueError):
                continue
            if number > 0:
                ids.add(number)
        return ids

    @validator("status", pre=True)
    def blank_status(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @classmethod
    def default(cls, today: Optional[date] = None, days: int = 30) -> "ReportFilterState":
        """Last ``days`` days up to today, every batch, full mode"""
        today = today or date.today()
        return cls(from_date=today - timedelta(days=days), to_date=today)

    @property
    def single_selection(self) -> Optional[int]:
        if len(self.selection_ids) == 1:
            return next(iter(self.selection_ids))
        return None


class ReportSourceSpec(BaseModel):
    """One dataset fetched for a report"""
    name: str
    table: str
    selection_field: Optional[str] = Field(default="batch_id")
    date_field: Optional[str] = Field(default=None)
    # None takes REPORT_PAGE_SIZE, or REPORT_BATCH_PAGE_SIZE for header sources
    page_size: Optional[int] = Field(default=None)
    header: bool = Field(default=False)
    sort_by: Optional[str] = Field(default=None)
    sort_dir: str = Field(default="DESC")
    fixed_filters: Dict[str, str] = Field(default_factory=dict)


class ReportDataset(BaseModel):
    """Raw rows per source, before scoping"""
    rows: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    sources: Dict[str, DataSource] = Field(default_factory=dict)

    @property
    def stale(self) -> bool:
        return any(source == DataSource.CACHE for source in self.sources.values())


class CostAdjustments(BaseModel):
    """Optional cost components added to cost of production"""
    include_vaccine: bool = Field(default=True)
    include_labor: bool = Field(default=True)


class BroilerSummary(BaseModel):
    """Headline broiler KPIs"""
    batch_count: int = 0
    birds_current: int = 0
    running_cop: float = 0.0
    running_vaccine_cost: float = 0.0
    running_labor_cost: float = 0.0
    adjusted_cop: float = 0.0
    running_revenue: float = 0.0
    running_profit: float = 0.0
    running_profit_adjusted: float = 0.0
    avg_fcr: float = 0.0
    avg_adg_g: float = 0.0
    avg_mortality_rate: float = 0.0
    period_feed_kg: float = 0.0
    period_feed_cost: float = 0.0
    period_harvest_birds: int = 0
    period_harvest_revenue: float = 0.0


class DailyTrendRow(BaseModel):
    date: str
    feed_kg: float
    mortality: int
    avg_weight_kg: float


class MortalityCauseRow(BaseModel):
    cause: str
    count: int


class RevenueTrendRow(BaseModel):
    date: str
    revenue: float


class BatchProfitRow(BaseModel):
    batch_code: str
    revenue: float
    cost: float
    profit: float


class BroilerReport(BaseModel):
    """Everything a broiler performance report renders"""
    filters: ReportFilterState
    adjustments: CostAdjustments = Field(default_factory=CostAdjustments)
    summary: BroilerSummary
    daily_trend: List[DailyTrendRow] = Field(default_factory=list)
    mortality_causes: List[MortalityCauseRow] = Field(default_factory=list)
    harvest_trend: List[RevenueTrendRow] = Field(default_factory=list)
    batch_profit: List[BatchProfitRow] = Field(default_factory=list)
    # Full scoped subsets (aggregate input) and the rows actually shown
    scoped: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    display: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    sources: Dict[str, DataSource] = Field(default_factory=dict)
    stale: bool = False
    superseded: bool = False


class GenericReportSummary(BaseModel):
    """KPIs computed for any row-set"""
    rows: int = 0
    total_value: float = 0.0
    average_value: float = 0.0
    status_tagged: int = 0


class GenericReport(BaseModel):
    filters: ReportFilterState
    date_field: Optional[str] = None
    columns: List[str] = Field(default_factory=list)
    summary: GenericReportSummary
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total_rows: int = 0
    source: DataSource = Field(default=DataSource.REMOTE)
    stale: bool = False
    superseded: bool = False

"""
Chart series construction for the coin detail view and summary cards.
"""

from datetime import UTC, datetime
from typing import Annotated, Final, Literal

from pydantic import BaseModel, Field

from ..market_data.models import ChartData, Cryptocurrency

TIMEFRAMES: Final[dict[str, float]] = {
    "1H": 0.04,
    "24H": 1,
    "7D": 7,
    "30D": 30,
    "90D": 90,
    "1Y": 365,
}
DEFAULT_TIMEFRAME: Final[str] = "24H"

POSITIVE_COLOR: Final[str] = "#10b981"
NEGATIVE_COLOR: Final[str] = "#ef4444"
VOLUME_COLOR: Final[str] = "#6366f1"

TimeUnit = Literal["hour", "day", "month"]


class ChartSeries(BaseModel):
    """One plotted series: x labels and y values of equal length."""

    label: Annotated[str, Field(description="Series name")]
    labels: Annotated[list[datetime], Field(description="X axis timestamps")]
    values: Annotated[list[float], Field(description="Y axis values")]
    unit: TimeUnit
    color: str


class SparklineSeries(BaseModel):
    """Seven day sparkline indexed by sample position."""

    labels: list[int]
    values: list[float]
    color: str


def days_for_timeframe(label: str) -> float:
    """Range in days for a timeframe label such as "7D"."""
    try:
        return TIMEFRAMES[label.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown timeframe '{label}', expected one of {', '.join(TIMEFRAMES)}"
        ) from None


def time_unit_for(days: float) -> TimeUnit:
    if days <= 1:
        return "hour"
    if days <= 30:
        return "day"
    return "month"


def trend_color(change_percentage: float | None) -> str:
    return POSITIVE_COLOR if (change_percentage or 0) >= 0 else NEGATIVE_COLOR


def _from_millis(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp / 1000, tz=UTC)


def build_price_series(
    chart: ChartData, days: float, change_percentage_24h: float | None
) -> ChartSeries:
    return ChartSeries(
        label="Price",
        labels=[_from_millis(ts) for ts, _ in chart.prices],
        values=[price for _, price in chart.prices],
        unit=time_unit_for(days),
        color=trend_color(change_percentage_24h),
    )


def build_volume_series(chart: ChartData, days: float) -> ChartSeries:
    return ChartSeries(
        label="Volume",
        labels=[_from_millis(ts) for ts, _ in chart.total_volumes],
        values=[volume for _, volume in chart.total_volumes],
        unit=time_unit_for(days),
        color=VOLUME_COLOR,
    )


def build_sparkline_series(coin: Cryptocurrency) -> SparklineSeries | None:
    """Sparkline for a summary card, or None when the coin has no samples."""
    prices = coin.sparkline_in_7d.price if coin.sparkline_in_7d else []
    if not prices:
        return None
    return SparklineSeries(
        labels=list(range(len(prices))),
        values=prices,
        color=trend_color(coin.price_change_percentage_24h),
    )

"""
Formatting and chart helpers for the Streamlit UI.

Amounts are shown in Rupiah with no decimals and "." as the thousands
separator (Rp 1.500.000). Charts are Plotly figures that Streamlit can
render with st.plotly_chart.
"""

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence, Union

import plotly.graph_objects as go

from envelope_finance.budget import percent_used
from envelope_finance.models.ledger import BudgetBucket, ChartSlice


def format_currency(amount: Union[Decimal, int, float], symbol: str = "Rp") -> str:
    """Format an amount as whole Rupiah, e.g. -Rp 100.000."""
    value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    digits = f"{abs(value):,}".replace(",", ".")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol} {digits}"


def format_long_date(day: date) -> str:
    """19 October 2026"""
    return f"{day.day} {calendar.month_name[day.month]} {day.year}"


def month_options() -> list[tuple[int, str]]:
    """(0-based month index, month name) pairs for the period selector."""
    return [(index, calendar.month_name[index + 1]) for index in range(12)]


def progress_fraction(bucket: BudgetBucket) -> float:
    """Envelope usage for a progress bar, clamped to 0.0-1.0."""
    percent = percent_used(bucket)
    return float(min(max(percent, Decimal("0")), Decimal("100")) / 100)


def build_spending_chart(slices: Sequence[ChartSlice]) -> go.Figure:
    """Donut chart of spending per envelope."""
    if not slices:
        fig = go.Figure()
        fig.update_layout(
            annotations=[dict(text="No spending yet", showarrow=False, font=dict(size=14))],
            xaxis=dict(visible=False),
            yaxis=dict(visible=False),
            height=300,
        )
        return fig

    fig = go.Figure(
        go.Pie(
            labels=[s.label for s in slices],
            values=[float(s.value) for s in slices],
            marker=dict(colors=[s.color for s in slices]),
            hole=0.6,
            sort=False,
            textinfo="percent",
        )
    )
    fig.update_layout(
        height=300,
        margin=dict(t=10, b=10, l=10, r=10),
        legend=dict(orientation="h"),
    )
    return fig

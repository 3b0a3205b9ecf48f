from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class ReportingPeriod:
    start: date
    end: date  # exclusive, as Cost Explorer expects
    name: str
    label: str

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


@dataclass(frozen=True)
class MonthPeriods:
    previous: ReportingPeriod
    current: ReportingPeriod
    day: int


def add_months(d: date, months: int) -> date:
    """First day of the month `months` away from d's month."""
    year = d.year + (d.month - 1 + months) // 12
    month = (d.month - 1 + months) % 12 + 1
    return date(year, month, 1)


def month_periods(now: datetime) -> MonthPeriods:
    """
    Previous full month and current month for the reference instant `now`.

    Both ranges are [first of month, first of following month). The current
    month's end lies in the future; Cost Explorer returns month-to-date data
    for it.
    """
    current_start = now.date().replace(day=1)
    previous_start = add_months(current_start, -1)
    next_start = add_months(current_start, 1)

    previous = ReportingPeriod(
        start=previous_start,
        end=current_start,
        name="Previous Month",
        label=f"Previous Month ({previous_start.strftime('%b %Y')})",
    )
    current = ReportingPeriod(
        start=current_start,
        end=next_start,
        name="Current Month",
        label=f"Current Month MTD ({current_start.strftime('%b %Y')})",
    )
    return MonthPeriods(previous=previous, current=current, day=now.day)

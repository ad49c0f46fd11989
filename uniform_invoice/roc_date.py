"""Republic of China (Minguo) calendar helpers.

Taiwan dates invoices in the Minguo calendar, where year 1 is 1912:
``ROC year = Gregorian year - 1911``.

All dates are read as Taiwan wall-clock dates. Naive values are taken as
already being Taiwan time; timezone-aware datetimes are converted to
Asia/Taipei before the calendar date is taken, so ``2025-12-31T20:00:00Z``
is 1 January ROC 115.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from dateutil import parser as dateutil_parser
from dateutil import tz

ROC_EPOCH_OFFSET = 1911
TAIPEI = tz.gettz("Asia/Taipei")

# Per-digit year glyphs; distinct from the capital numerals used for money.
YEAR_DIGITS = ("○", "一", "二", "三", "四", "五", "六", "七", "八", "九")
MONTH_NAMES = ("一", "二", "三", "四", "五", "六", "七", "八", "九", "十", "十一", "十二")
PERIOD_PAIRS: Tuple[Tuple[int, int], ...] = ((1, 2), (3, 4), (5, 6), (7, 8), (9, 10), (11, 12))

DateInput = Union[date, datetime, str]


@dataclass(frozen=True)
class RocDate:
    year: int
    month: int
    day: int

    @property
    def formatted(self) -> str:
        return f"中華民國 {self.year} 年 {self.month} 月 {self.day} 日"

    @property
    def compact(self) -> str:
        return f"中華民國{self.year}年{self.month}月{self.day}日"


@dataclass(frozen=True)
class PeriodPair:
    start: int
    end: int
    label: str


def ad_to_roc(ad_year: int) -> int:
    return ad_year - ROC_EPOCH_OFFSET


def roc_to_ad(roc_year: int) -> int:
    return roc_year + ROC_EPOCH_OFFSET


def taiwan_date(value: DateInput) -> date:
    """Return the Taiwan calendar date of a date, datetime or date string."""
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError("Date string is empty")
        try:
            value = dateutil_parser.isoparse(raw)
        except ValueError:
            try:
                value = dateutil_parser.parse(raw)
            except (ValueError, OverflowError) as exc:
                raise ValueError(f"Unrecognised date {raw!r}") from exc

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(TAIPEI)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected a date, datetime or string, got {type(value).__name__}")


def format_roc_date(value: DateInput) -> RocDate:
    day = taiwan_date(value)
    return RocDate(year=ad_to_roc(day.year), month=day.month, day=day.day)


def roc_year_glyphs(roc_year: int) -> str:
    if roc_year < 1:
        raise ValueError(f"ROC year must be positive, got {roc_year}")
    return "".join(YEAR_DIGITS[int(char)] for char in str(roc_year))


def period_label(start_month: int, end_month: int) -> str:
    if (start_month, end_month) not in PERIOD_PAIRS:
        raise ValueError(f"({start_month}, {end_month}) is not an invoice period")
    return f"{MONTH_NAMES[start_month - 1]}、{MONTH_NAMES[end_month - 1]}月份"


def get_invoice_period(start_month: int, end_month: int, roc_year: int) -> str:
    """Return the period heading of an invoice, e.g. ``一一四年一、二月份``."""
    return f"{roc_year_glyphs(roc_year)}年{period_label(start_month, end_month)}"


def invoice_period_pairs() -> List[PeriodPair]:
    return [PeriodPair(start, end, period_label(start, end)) for start, end in PERIOD_PAIRS]


def period_for_month(month: int) -> Tuple[int, int]:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return PERIOD_PAIRS[(month - 1) // 2]


def current_roc_year(today: Optional[date] = None) -> int:
    return ad_to_roc((today or taiwan_today()).year)


def taiwan_today() -> date:
    return datetime.now(TAIPEI).date()

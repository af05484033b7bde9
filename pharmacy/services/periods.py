"""
Résolution des fenêtres de reporting.

period    : daily | weekly | monthly | quarterly | yearly
reference : timestamp ISO, YYYY-MM-DD, YYYY-MM ou YYYY (défaut : maintenant),
            ramené au premier instant de sa granularité.

La fenêtre est [start, end] inclusive, end = début de la période suivante - 1 ms.
Les semaines commencent le lundi.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

from pharmacy.app.core.errors import InvalidPeriodError
from pharmacy.app.db.models.core_types import Period
from pharmacy.app.schemas.report import ReportWindow

_YEAR = re.compile(r"^\d{4}$")
_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ONE_MS = timedelta(milliseconds=1)


def parse_period(period: str | Period) -> Period:
    try:
        return Period(period.value if isinstance(period, Period) else str(period).strip().lower())
    except ValueError:
        raise InvalidPeriodError(
            f"Unknown period {period!r} (expected one of: {', '.join(p.value for p in Period)})"
        ) from None


def parse_reference(reference: str | date | datetime | None, *, now: datetime | None = None) -> datetime:
    if reference is None or (isinstance(reference, str) and not reference.strip()):
        return now or datetime.now()
    if isinstance(reference, datetime):
        return reference.replace(tzinfo=None)
    if isinstance(reference, date):
        return datetime.combine(reference, time.min)
    if not isinstance(reference, str):
        raise InvalidPeriodError(f"Unsupported reference {reference!r} (expected an ISO date string)")

    text = reference.strip()
    try:
        if _YEAR.match(text):
            return datetime(int(text), 1, 1)
        m = _MONTH.match(text)
        if m:
            return datetime(int(m.group(1)), int(m.group(2)), 1)
        if _DAY.match(text):
            return datetime.combine(date.fromisoformat(text), time.min)
        # timestamp complet ("Z" accepté)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None)
    except ValueError:
        raise InvalidPeriodError(f"Cannot parse reference date {reference!r}") from None


def _next_month(d: datetime) -> datetime:
    if d.month == 12:
        return datetime(d.year + 1, 1, 1)
    return datetime(d.year, d.month + 1, 1)


def period_bounds(period: Period, ref: datetime) -> tuple[datetime, datetime]:
    """Retourne [start, next_start) pour la période contenant ref."""
    day = datetime.combine(ref.date(), time.min)
    if period is Period.daily:
        return day, day + timedelta(days=1)
    if period is Period.weekly:
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=7)
    if period is Period.monthly:
        start = datetime(ref.year, ref.month, 1)
        return start, _next_month(start)
    if period is Period.quarterly:
        first_month = 3 * ((ref.month - 1) // 3) + 1
        start = datetime(ref.year, first_month, 1)
        nxt = start
        for _ in range(3):
            nxt = _next_month(nxt)
        return start, nxt
    start = datetime(ref.year, 1, 1)
    return start, datetime(ref.year + 1, 1, 1)


def period_label(period: Period, start: datetime) -> str:
    if period is Period.daily:
        return start.date().isoformat()
    if period is Period.weekly:
        return f"Week of {start.date().isoformat()}"
    if period is Period.monthly:
        return start.strftime("%B %Y")
    if period is Period.quarterly:
        return f"Q{(start.month - 1) // 3 + 1} {start.year}"
    return str(start.year)


def resolve_period(
    period: str | Period,
    reference: str | date | datetime | None = None,
    *,
    now: datetime | None = None,
) -> ReportWindow:
    p = parse_period(period)
    ref = parse_reference(reference, now=now)
    start, next_start = period_bounds(p, ref)
    return ReportWindow(
        period=p.value,
        label=period_label(p, start),
        start=start,
        end=next_start - ONE_MS,
    )


def window_upper_bound(window: ReportWindow) -> datetime:
    """Borne exclusive utilisée en SQL (évite de perdre les microsecondes après end)."""
    return window.end + ONE_MS

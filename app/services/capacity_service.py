"""Capacity service — simultaneous-site limit checks.

Every site-bearing view (dashboard cards, site board, site list, calendar)
asks the same CapacityEvaluator, so they all agree on which days and
sites are over the company's limit.

Rules:
- A site is active on day D iff its status is not Archived and
  start_date <= D <= end_date, compared as calendar days (time of day
  is dropped on both sides, the end day is included whole).
- A limit of 0 / None disables the check.
- A day is over the limit when the active count reaches the limit (>=).
- A site card shows the warning only if the site is active today and
  today is over the limit.

The evaluator is pure: callers pass the site list, the limit and, where
relevant, today's date.
"""

from datetime import date, datetime, timedelta

from app.models.records import SiteRecord


def to_day(value, tz=None):
    """Normalize a date, datetime or ISO string to a calendar date.

    Aware datetimes are converted to `tz` (system local time when None)
    before the time of day is dropped. Returns None for None.

    Raises:
        ValueError: If a string is not an ISO date / datetime.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def site_range(site, tz=None):
    """(start_day, end_day) of a site, or None when either bound is missing."""
    start = to_day(site.get("start_date"), tz)
    end = to_day(site.get("end_date"), tz)
    if start is None or end is None:
        return None
    return start, end


def is_active_on(site, day, tz=None):
    """True if the site counts towards capacity on `day`."""
    if site.get("status") == SiteRecord.ARCHIVED:
        return False
    bounds = site_range(site, tz)
    if bounds is None:
        return False
    start, end = bounds
    return start <= to_day(day, tz) <= end


class CapacityEvaluator:
    """Answers capacity questions for one site list and one limit."""

    def __init__(self, sites, limit=0, tz=None):
        self.tz = tz
        self.limit = int(limit or 0)
        self.sites = list(sites)

        # Archived sites never count; parse the ranges once.
        self._ranges = []
        for site in self.sites:
            if site.get("status") == SiteRecord.ARCHIVED:
                continue
            bounds = site_range(site, tz)
            if bounds is not None:
                self._ranges.append((site, bounds[0], bounds[1]))

    @property
    def enabled(self):
        return self.limit > 0

    def active_sites_on(self, day):
        day = to_day(day, self.tz)
        return [site for site, start, end in self._ranges if start <= day <= end]

    def count_active_on(self, day):
        """Number of non-archived sites whose range contains `day`."""
        day = to_day(day, self.tz)
        return sum(1 for _, start, end in self._ranges if start <= day <= end)

    def is_over_limit_on(self, day):
        if not self.enabled:
            return False
        return self.count_active_on(day) >= self.limit

    def is_site_over_limit_today(self, site, today=None):
        """Warning flag for a site card: only "right now" conflicts count."""
        today = to_day(today, self.tz) if today is not None else datetime.now(self.tz).date()
        if not is_active_on(site, today, self.tz):
            return False
        return self.is_over_limit_on(today)

    def daily_counts(self, start, end):
        """[(day, count, over_limit)] for every day from start to end inclusive."""
        start = to_day(start, self.tz)
        end = to_day(end, self.tz)
        days = []
        day = start
        while day <= end:
            count = self.count_active_on(day)
            days.append((day, count, self.enabled and count >= self.limit))
            day += timedelta(days=1)
        return days

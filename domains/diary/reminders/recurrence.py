"""Expand a recurring reminder into concrete future occurrence times.

Expansion walks forward from the anchor one period at a time, including
periods that are already in the past, and keeps the ones strictly after
`now`. Two bounds keep it finite: at most `horizon` occurrences are produced
and at most `max_attempts` candidates are examined, so an anchor far in the
past simply yields fewer (or no) occurrences.
"""

from datetime import datetime, timedelta
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from .. import config
from ..errors import ConfigurationError
from ..models import RecurrenceRule


_PERIODS = {
    RecurrenceRule.DAILY: timedelta(days=1),
    RecurrenceRule.WEEKLY: timedelta(days=7),
    # relativedelta clamps the day to the end of a shorter month (Jan 31 -> Feb 28)
    RecurrenceRule.MONTHLY: relativedelta(months=1),
}


def _period_for(rule):
    rule = RecurrenceRule.parse(rule)
    if rule not in _PERIODS:
        raise ConfigurationError(f"Recurrence rule {rule.value!r} cannot be expanded")
    return _PERIODS[rule]


def next_occurrence(current: datetime, rule) -> datetime:
    """Advance one period from `current`.

    Raises:
        ConfigurationError: For "none" or an unknown rule
    """
    return current + _period_for(rule)


class Occurrences:
    """Lazy, restartable sequence of future occurrence times."""

    def __init__(self, anchor: datetime, rule: RecurrenceRule, horizon: int,
                 now: datetime, max_attempts: int):
        self.anchor = anchor
        self.rule = rule
        self.horizon = horizon
        self.now = now
        self.max_attempts = max_attempts
        self._period = _period_for(rule)

    def __iter__(self) -> Iterator[datetime]:
        current = self.anchor
        produced = 0
        attempts = 0

        while produced < self.horizon and attempts < self.max_attempts:
            attempts += 1
            if current > self.now:
                yield current
                produced += 1
            current = current + self._period

    def __repr__(self) -> str:
        return (f"Occurrences(anchor={self.anchor.isoformat()}, rule={self.rule.value}, "
                f"horizon={self.horizon})")


def expand(
    anchor: datetime,
    rule,
    horizon: Optional[int] = None,
    now: Optional[datetime] = None,
    max_attempts: Optional[int] = None,
) -> Occurrences:
    """Expand a recurrence into at most `horizon` future occurrence times.

    Args:
        anchor: First fire time of the reminder (wall clock)
        rule: daily, weekly or monthly
        horizon: Maximum occurrences to produce (default from config)
        now: Reference time; only occurrences strictly after it are produced
        max_attempts: Maximum candidates examined (default from config)

    Returns:
        Iterable of strictly increasing datetimes

    Raises:
        ConfigurationError: If the rule is "none" or unknown
        ValueError: If horizon is not positive
    """
    rule = RecurrenceRule.parse(rule)
    horizon = config.RECURRENCE_HORIZON if horizon is None else horizon
    max_attempts = config.MAX_EXPANSION_ATTEMPTS if max_attempts is None else max_attempts
    if horizon <= 0:
        raise ValueError(f"horizon must be positive, got {horizon}")
    if now is None:
        now = datetime.now()

    return Occurrences(anchor, rule, horizon, now, max_attempts)

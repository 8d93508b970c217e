"""
Cadence expressions.

A cadence is a cron-like expression with a leading seconds field:

    ┌───────────── second (0-59)
    │ ┌─────────── minute (0-59)
    │ │ ┌───────── hour (0-23)
    │ │ │ ┌─────── day of month (1-31)
    │ │ │ │ ┌───── month (1-12)
    │ │ │ │ │ ┌─── day of week (0-6, Sunday is 0)
    │ │ │ │ │ │
    * * * * * *

Each field accepts `*`, single values, ranges (`1-5`), lists (`1,3,5`) and
steps (`*/10`). The classic five-field form without seconds is accepted too
and fires at second 0.
"""
from datetime import datetime, timezone
from typing import Optional

from croniter import croniter, CroniterError

from service_scheduler.errors import CadenceError


class Cadence:
    """
    A parsed cadence expression. Parsing happens once; each call to `next_fire`
    advances from the given instant to the next matching one.
    """

    def __init__(self, expression: str, iterator: croniter):
        self.expression: str = expression
        self._iterator: croniter = iterator

    @classmethod
    def parse(cls, expression: str) -> "Cadence":
        if not isinstance(expression, str):
            raise CadenceError(str(expression), "Cadence expression must be a string")
        fields = expression.split()
        if len(fields) not in (5, 6):
            raise CadenceError(expression, f"Expected 5 or 6 fields, got {len(fields)}: '{expression}'")
        try:
            iterator = croniter(" ".join(fields), datetime.now(timezone.utc), second_at_beginning=True)
            # Expressions such as Feb 30 parse but never match
            iterator.get_next(datetime)
        except (CroniterError, ValueError, KeyError) as e:
            raise CadenceError(expression, f"Invalid cadence expression '{expression}': {e}") from e
        return cls(" ".join(fields), iterator)

    @property
    def has_seconds(self) -> bool:
        return len(self.expression.split()) == 6

    def next_fire(self, after: datetime) -> datetime:
        """
        Return the first instant strictly after `after` that matches every field.

        Args:
            after (datetime): A timezone-aware reference instant.
        """
        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        # Fire times fall on whole seconds
        self._iterator.set_current(after.replace(microsecond=0), force=True)
        fire: datetime = self._iterator.get_next(datetime)
        while fire <= after:
            fire = self._iterator.get_next(datetime)
        return fire

    def seconds_until_next(self, now: datetime) -> float:
        # Aware datetimes sharing a tzinfo subtract as wall times; compare instants instead
        return max(self.next_fire(now).timestamp() - now.timestamp(), 0.0)

    def __repr__(self) -> str:
        return f"Cadence({self.expression!r})"


def parse_cadence(expression: Optional[str]) -> Optional["Cadence"]:
    """
    Parse an optional cadence expression. `None` and blank strings mean the
    service has no cadence and runs only once.
    """
    if expression is None or (isinstance(expression, str) and not expression.strip()):
        return None
    return Cadence.parse(expression)

"""Weekly recurrence expansion."""

from dataclasses import replace
from datetime import timedelta, tzinfo

from trainer_calendar.domain.errors import ValidationError
from trainer_calendar.domain.sessions import SessionDraft
from trainer_calendar.services.dates import date_key, to_local_date, to_stored_instant


def expand_weekly(base: SessionDraft, weeks: int, tz: tzinfo) -> list[SessionDraft]:
    """Return ``weeks`` drafts spaced 7 days apart, starting one week after base.

    The base itself is not included. Local wall-clock start and end times are
    kept across DST changes.
    """
    if weeks < 1:
        raise ValidationError("Weekly repetition needs at least one week")
    local_start = to_local_date(base.start_instant, tz)
    local_end = to_local_date(base.end_instant, tz)
    drafts: list[SessionDraft] = []
    for index in range(1, weeks + 1):
        offset = timedelta(days=7 * index)
        start = local_start + offset
        drafts.append(
            replace(
                base,
                date_key=date_key(start),
                start_instant=to_stored_instant(start),
                end_instant=to_stored_instant(local_end + offset),
                recurring=True,
            )
        )
    return drafts

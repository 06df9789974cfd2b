"""Time record completion event.

Clock-out sends ``time_record_completed`` after its transaction commits. The
event id is derived from the record, so a re-sent or re-queued event carries
the same id and consumers can drop it.
"""

from dataclasses import dataclass
from datetime import datetime

from django.dispatch import Signal

# Sent with sender=TimeRecord and event=TimeRecordCompleted
time_record_completed = Signal()


@dataclass(frozen=True)
class TimeRecordCompleted:
    event_id: str
    time_record_id: int
    booking_id: int
    clock_in_time: datetime
    clock_out_time: datetime


def completion_event_id(time_record) -> str:
    return f"time-record-{time_record.pk}-completed"


def completion_event(time_record) -> TimeRecordCompleted:
    return TimeRecordCompleted(
        event_id=completion_event_id(time_record),
        time_record_id=time_record.pk,
        booking_id=time_record.booking_id,
        clock_in_time=time_record.clock_in_time,
        clock_out_time=time_record.clock_out_time,
    )


def emit_time_record_completed(time_record):
    """Send the completion signal; returns the receivers' responses."""
    return time_record_completed.send(
        sender=type(time_record),
        event=completion_event(time_record),
    )

"""Map (reminder id, occurrence index) to platform job ids.

job_id = reminder_id + occurrence_index * JOB_ID_STRIDE

Ids are distinct across reminders only while every reminder id stays below
the stride, so larger ids are rejected as overflowed. With a stride of
100000 and a 30 occurrence horizon the largest job id is 2,999,999, well
inside a signed 32-bit platform id.
"""

from typing import Optional

from .. import config
from ..errors import InvalidIdentifierError


def _check_reminder_id(reminder_id) -> int:
    if reminder_id is None:
        raise InvalidIdentifierError("Reminder has no id; persist it before scheduling")
    if isinstance(reminder_id, bool) or not isinstance(reminder_id, int):
        raise InvalidIdentifierError(f"Reminder id must be an int, got {reminder_id!r}")
    if reminder_id <= 0:
        raise InvalidIdentifierError(f"Reminder id must be positive, got {reminder_id}")
    if reminder_id >= config.JOB_ID_STRIDE:
        raise InvalidIdentifierError(
            f"Reminder id {reminder_id} overflows the job id stride {config.JOB_ID_STRIDE}"
        )
    return reminder_id


def job_id(reminder_id: int, occurrence_index: int = 0, horizon: Optional[int] = None) -> int:
    """Derive the platform job id for one occurrence of a reminder.

    Raises:
        InvalidIdentifierError: If the reminder id is missing, non-positive or
            overflowed, or the index is outside [0, horizon)
    """
    reminder_id = _check_reminder_id(reminder_id)
    horizon = config.RECURRENCE_HORIZON if horizon is None else horizon
    if not 0 <= occurrence_index < horizon:
        raise InvalidIdentifierError(
            f"Occurrence index {occurrence_index} outside [0, {horizon})"
        )
    return reminder_id + occurrence_index * config.JOB_ID_STRIDE


def job_ids_for(reminder_id: int, horizon: Optional[int] = None) -> list[int]:
    """Every job id that can be derived from a reminder."""
    horizon = config.RECURRENCE_HORIZON if horizon is None else horizon
    return [job_id(reminder_id, i, horizon) for i in range(horizon)]


def reminder_id_for(job_id_value: int) -> int:
    """Reminder id a job id was derived from (for logging)."""
    return job_id_value % config.JOB_ID_STRIDE


def occurrence_index_for(job_id_value: int) -> int:
    return job_id_value // config.JOB_ID_STRIDE

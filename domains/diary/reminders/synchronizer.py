"""Keep platform jobs in step with an entry's reminders.

Each save cancels every job the entry's previous reminders could have
produced, replaces the reminder rows, and schedules the new set from
scratch. Recurring reminders are re-expanded to a fixed horizon on every
save; a reminder that is never edited stops firing once that window has
passed.
"""

from typing import Optional

from logger import logger
from utils.log_sanitizer import sanitize_for_log
from . import identifiers
from .gateway import DeliveryGateway
from .recurrence import expand
from .. import config
from ..errors import (
    ConfigurationError,
    InvalidIdentifierError,
    NotificationPermissionError,
    PastTimeError,
    PlatformCorruptionError,
)
from ..models import Entry, Reminder, SyncReport
from ..store import EntryStore

# Errors after which the remaining occurrences of a reminder are not attempted
_STOP_REMINDER_ERRORS = (PlatformCorruptionError, NotificationPermissionError)


def notification_title(entry: Entry) -> str:
    return f"{config.TITLE_PREFIX} {entry.title}"


def notification_body(entry: Entry) -> str:
    if not entry.content:
        return config.EMPTY_BODY_TEXT
    if len(entry.content) > config.BODY_PREVIEW_LENGTH:
        return entry.content[:config.BODY_PREVIEW_LENGTH] + "..."
    return entry.content


class ReminderSynchronizer:
    """Orchestrates store writes and gateway calls for one entry at a time.

    Callers must not run two passes for the same entry concurrently.
    """

    def __init__(
        self,
        store: EntryStore,
        gateway: DeliveryGateway,
        horizon: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.horizon = config.RECURRENCE_HORIZON if horizon is None else horizon
        self.max_attempts = config.MAX_EXPANSION_ATTEMPTS if max_attempts is None else max_attempts
        if self.horizon <= 0:
            raise ValueError(f"horizon must be positive, got {self.horizon}")

    # --- Entry lifecycle ---

    async def on_entry_saved(
        self,
        entry: Entry,
        desired_reminders: Optional[list[Reminder]] = None
    ) -> SyncReport:
        """Persist an entry and replace its scheduled reminders.

        Args:
            entry: The created or edited entry
            desired_reminders: The reminders the entry should now have. None
                keeps the existing reminders but reschedules them so title and
                content changes reach the notification text.

        Returns:
            SyncReport with cancel and schedule counts

        Raises:
            Exception: Only store errors; notification failures are reported
        """
        report = SyncReport()

        if self.store.get_entry(entry.id) is None:
            self.store.create_entry(entry)
            logger.info(f"Entry created: {sanitize_for_log(entry.title)}")
        else:
            self.store.update_entry(entry)
            logger.info(f"Entry updated: {sanitize_for_log(entry.title)}")

        previous = self.store.get_reminders_for_entry(entry.id)
        if desired_reminders is None:
            desired_reminders = previous

        for reminder in previous:
            report.merge(await self._cancel_reminder_jobs(reminder))
        if previous:
            self.store.delete_reminders_for_entry(entry.id)
            logger.info(f"Removed {len(previous)} previous reminder(s) for entry {entry.id}")

        # Reminders re-saved from the previous set keep their ids
        previous_ids = {r.id for r in previous}
        created = []
        for r in desired_reminders:
            candidate = r.unsaved_copy(entry_id=entry.id)
            if r.id in previous_ids:
                candidate.id = r.id
                previous_ids.discard(r.id)
            created.append(self.store.create_reminder(candidate))

        for reminder in created:
            report.merge(await self._schedule_reminder(entry, reminder))

        logger.info(f"Synchronized entry {entry.id}: {report.to_dict()}")
        return report

    async def on_entry_deleted(self, entry_id: str) -> SyncReport:
        """Cancel all of an entry's jobs, then delete its reminders and the entry.

        The entry is deleted even if cancellation fails.
        """
        report = SyncReport()
        logger.info(f"Deleting entry: {entry_id}")

        try:
            reminders = self.store.get_reminders_for_entry(entry_id)
        except Exception as e:
            logger.warning(f"Could not get reminders for entry {entry_id}: {e}")
            reminders = []

        for reminder in reminders:
            report.merge(await self._cancel_reminder_jobs(reminder))

        self.store.delete_reminders_for_entry(entry_id)
        self.store.delete_entry(entry_id)
        logger.info(
            f"Entry {entry_id} deleted ({report.cancelled} jobs cancelled, "
            f"{report.cancel_failed} cancel failures)"
        )
        return report

    # --- Reminder toggles ---

    async def on_reminder_toggled_inactive(self, reminder: Reminder) -> SyncReport:
        """Cancel a reminder's jobs but keep its row for later re-activation."""
        report = await self._cancel_reminder_jobs(reminder)
        if reminder.id is not None:
            self.store.set_reminder_active(reminder.id, False)
        reminder.is_active = False
        return report

    async def on_reminder_toggled_active(self, reminder: Reminder) -> SyncReport:
        """Re-activate a reminder and re-expand it from its stored anchor."""
        report = SyncReport()
        if reminder.id is None:
            report.errors.append(InvalidIdentifierError("Reminder has not been persisted"))
            return report

        stored = self.store.get_reminder(reminder.id)
        entry = self.store.get_entry(stored.entry_id) if stored else None
        if stored is None or entry is None:
            report.errors.append(InvalidIdentifierError(f"Reminder {reminder.id} not found"))
            return report

        self.store.set_reminder_active(stored.id, True)
        stored.is_active = True
        reminder.is_active = True

        report.merge(await self._cancel_reminder_jobs(stored))
        report.merge(await self._schedule_reminder(entry, stored))
        return report

    # --- Verification ---

    async def verify_entry(self, entry_id: str) -> dict:
        """Compare the jobs an entry should have against what the platform lists.

        Best-effort: an unreadable platform simply reports everything missing.
        """
        now = self.gateway.wall_now()
        expected = set()

        for reminder in self.store.get_reminders_for_entry(entry_id):
            if not reminder.is_active:
                continue
            anchor = self.gateway.to_wall_clock(reminder.reminder_time)
            try:
                if reminder.is_recurring:
                    times = expand(anchor, reminder.recurrence,
                                   self.horizon, now, self.max_attempts)
                    expected.update(
                        identifiers.job_id(reminder.id, i, self.horizon)
                        for i, _ in enumerate(times)
                    )
                elif anchor > now:
                    expected.add(identifiers.job_id(reminder.id, 0, self.horizon))
            except (ConfigurationError, InvalidIdentifierError) as e:
                logger.warning(f"Cannot verify reminder {reminder.id}: {e}")

        result = await self.gateway.enumerate_pending()
        pending = set(result.value or [])

        return {
            "expected": sorted(expected),
            "pending": sorted(pending & expected),
            "missing": sorted(expected - pending),
        }

    # --- Internals ---

    async def _cancel_reminder_jobs(self, reminder: Reminder) -> SyncReport:
        """Best-effort cancel of every job derivable from a reminder."""
        report = SyncReport()
        try:
            job_ids = identifiers.job_ids_for(reminder.id, self.horizon)
        except InvalidIdentifierError as e:
            logger.warning(f"Skipping cancel for reminder {reminder.id}: {e}")
            return report

        for job_id in job_ids:
            result = await self.gateway.cancel_one(job_id)
            if result.ok:
                report.cancelled += 1
            else:
                report.cancel_failed += 1

        if report.cancel_failed:
            logger.warning(
                f"{report.cancel_failed} of {len(job_ids)} cancels failed for reminder {reminder.id}"
            )
        return report

    async def _schedule_reminder(self, entry: Entry, reminder: Reminder) -> SyncReport:
        report = SyncReport()
        if not reminder.is_active:
            logger.debug(f"Skipping inactive reminder {reminder.id}")
            return report

        now = self.gateway.wall_now()
        anchor = self.gateway.to_wall_clock(reminder.reminder_time)

        if not reminder.is_recurring:
            if anchor <= now:
                logger.info(f"Skipping past reminder {reminder.id}: {anchor}")
                report.skipped_past += 1
                return report
            self._record(report, await self._schedule_occurrence(entry, reminder, 0, anchor))
            return report

        try:
            occurrences = expand(anchor, reminder.recurrence, self.horizon, now, self.max_attempts)
        except ConfigurationError as e:
            logger.error(f"Cannot expand reminder {reminder.id}: {e}")
            report.failed += 1
            report.errors.append(e)
            return report

        logger.info(
            f"Scheduling recurring reminder {reminder.id} ({occurrences.rule.value}) from {anchor}"
        )

        for index, fire_time in enumerate(occurrences):
            error = await self._schedule_occurrence(entry, reminder, index, fire_time)
            self._record(report, error)
            if isinstance(error, _STOP_REMINDER_ERRORS):
                logger.warning(f"Stopping reminder {reminder.id} after occurrence {index}: {error}")
                break

        if report.scheduled == 0 and report.attempted == 0:
            logger.warning(f"No occurrences scheduled for reminder {reminder.id} (all in the past)")
            report.skipped_past += 1
        else:
            logger.info(f"Scheduled {report.scheduled}/{report.attempted} occurrences for reminder {reminder.id}")
        return report

    async def _schedule_occurrence(self, entry: Entry, reminder: Reminder,
                                   index: int, fire_time):
        """Schedule one occurrence. Returns the error, or None on success."""
        try:
            job_id = identifiers.job_id(reminder.id, index, self.horizon)
        except InvalidIdentifierError as e:
            logger.error(f"Cannot schedule reminder {reminder.id}: {e}")
            return e

        result = await self.gateway.schedule_one(
            job_id,
            notification_title(entry),
            notification_body(entry),
            fire_time,
            payload=entry.id,
            sound=reminder.sound_name,
        )
        return None if result.ok else result.error

    @staticmethod
    def _record(report: SyncReport, error) -> None:
        report.attempted += 1
        if error is None:
            report.scheduled += 1
        elif isinstance(error, PastTimeError):
            report.skipped_past += 1
        else:
            report.failed += 1
            report.errors.append(error)

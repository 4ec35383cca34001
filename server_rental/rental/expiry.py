"""Expiry scanner - reminders and automatic ACTIVE -> NEEDS_BACKUP promotion.

Each cycle:
- for every configured offset d, reminds the organizers of ACTIVE rentals
  whose end date falls on the UTC calendar day ``now + d`` (urgent when
  d <= 1), mirroring each reminder to the reminder channel when one is set
- moves every ACTIVE rental with ``end_date < now`` to NEEDS_BACKUP in one
  batch update and posts a summary to the reminder channel

The scanner never raises out of a cycle: a failing application or step is
logged and the rest of the cycle still runs. Cycles are serialised, so a
slow cycle delays the next tick instead of overlapping it.

Usage::

    scanner = ExpiryScanner(ctx, interval_minutes=60)
    await scanner.start()   # runs one cycle now, then every interval
    ...
    await scanner.stop()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta

import structlog

from server_rental.models.application import Application, ApplicationStatus
from server_rental.rental import messages
from server_rental.rental.context import RentalContext

log = structlog.get_logger(__name__)


def reminder_window(now: datetime, days: int) -> tuple[datetime, datetime]:
    """The UTC calendar day ``days`` after ``now`` as ``[start, end)``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    day = (now.astimezone(UTC) + timedelta(days=days)).date()
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


@dataclass
class CycleReport:
    """What one scanner cycle did."""

    started_at: datetime
    # offset in days -> application ids reminded under that offset
    reminders: dict[int, list[int]] = field(default_factory=dict)
    reminder_failures: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)
    promoted: int = 0
    errors: list[str] = field(default_factory=list)


class ExpiryScanner:
    """Periodic expiry scan over the record store."""

    reminder_window = staticmethod(reminder_window)

    def __init__(self, ctx: RentalContext, interval_minutes: int = 60) -> None:
        self._ctx = ctx
        self._interval_seconds = interval_minutes * 60
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """Run one reminder and promotion pass."""
        async with self._lock:
            current = now or datetime.now(UTC)
            if current.tzinfo is None:
                current = current.replace(tzinfo=UTC)
            report = CycleReport(started_at=current)

            for days in self._ctx.settings.reminder_days:
                await self._send_reminders(current, days, report)
            await self._promote_expired(current, report)

            log.info(
                "expiry.cycle_completed",
                reminders=sum(len(ids) for ids in report.reminders.values()),
                expired=len(report.expired),
                promoted=report.promoted,
                errors=len(report.errors),
            )
            return report

    async def _send_reminders(self, now: datetime, days: int, report: CycleReport) -> None:
        start, end = reminder_window(now, days)
        try:
            applications = await self._ctx.store.find_active_ending_between(start, end)
        except Exception as exc:
            log.error("expiry.reminder_query_failed", days=days, error=str(exc))
            report.errors.append(f"reminders[{days}]: {exc}")
            return

        reminded = report.reminders.setdefault(days, [])
        for application in applications:
            try:
                await self._remind(application, days)
                reminded.append(application.id)
            except Exception as exc:
                log.warning(
                    "expiry.reminder_failed",
                    application_id=application.id,
                    days=days,
                    error=str(exc),
                )
                report.reminder_failures.append(application.id)

    async def _remind(self, application: Application, days: int) -> None:
        notifier = self._ctx.notifier
        await notifier.send_direct(
            application.organizer_id, messages.reminder_notice(application, days)
        )
        channel_id = self._ctx.settings.reminder_channel_id
        if channel_id:
            await notifier.send_to_channel(
                channel_id, messages.reminder_channel_notice(application, days)
            )
        log.info(
            "expiry.reminder_sent",
            application_id=application.id,
            days=days,
            urgent=messages.is_urgent(days),
        )

    async def _promote_expired(self, now: datetime, report: CycleReport) -> None:
        try:
            expired = await self._ctx.store.find_active_expired(now)
            if not expired:
                return
            report.expired = [application.id for application in expired]
            report.promoted = await self._ctx.store.update_many_status(
                report.expired, ApplicationStatus.NEEDS_BACKUP
            )
        except Exception as exc:
            log.error("expiry.promotion_failed", error=str(exc))
            report.errors.append(f"promotion: {exc}")
            return

        log.info("expiry.promoted", count=report.promoted, application_ids=report.expired)
        channel_id = self._ctx.settings.reminder_channel_id
        if channel_id:
            try:
                await self._ctx.notifier.send_to_channel(
                    channel_id, messages.expiry_summary_notice(expired)
                )
            except Exception as exc:
                log.warning("expiry.summary_failed", error=str(exc))

    # ---------------------------------------------------------------- #
    # Async background task
    # ---------------------------------------------------------------- #

    async def start(self) -> None:
        """Start the background loop; the first cycle runs immediately."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        log.info("expiry.scanner_started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("expiry.scanner_stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
            except Exception as exc:  # noqa: BLE001
                log.error("expiry.cycle_error", error=str(exc))
            await asyncio.sleep(self._interval_seconds)

"""
Deadline Reminder Scheduler

Periodically scans open tasks whose reminder window has opened and emails
the owner once per (task, deadline). A dispatch record is written only after
a successful delivery, so a failed send is retried on the next tick. The
unique constraint on the record is what makes a second write a no-op.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Mapping, Optional, Tuple
import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from server.database import SessionLocal
from server.mailer import is_delivered
from server.models import ReminderDispatch
from server.stores import dispatch_recorded, tasks_due_for_reminder
from .scheduler_config import (
    SCHEDULER_CHECK_INTERVAL,
    SCHEDULER_TIMEZONE,
    SCHEDULER_MISFIRE_GRACE,
    REMINDER_JOB_ID,
)
from .send import send_deadline_reminder

logger = logging.getLogger(__name__)

REMINDERS_DISPATCHED = Counter(
    "reminders_dispatched_total",
    "Deadline reminders delivered"
)

REMINDER_FAILURES = Counter(
    "reminder_delivery_failures_total",
    "Deadline reminders that failed to deliver"
)

TICKS_SKIPPED = Counter(
    "reminder_ticks_skipped_total",
    "Scheduler ticks skipped because the previous tick was still running"
)

ReminderSender = Callable[[str, dict, datetime], Tuple[Mapping, int]]


@dataclass
class TickResult:
    ran: bool = True
    scanned: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0


class ReminderScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        send: ReminderSender = send_deadline_reminder,
        clock: Callable[[], datetime] = datetime.utcnow,
        interval_seconds: int = SCHEDULER_CHECK_INTERVAL,
        timezone: str = SCHEDULER_TIMEZONE,
    ) -> None:
        self.session_factory = session_factory
        self.send = send
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.timezone = pytz.timezone(timezone)
        self._tick_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    # -----------------------------------------------------
    # tick
    # -----------------------------------------------------
    def check_deadlines(self) -> TickResult:
        """
        Main job: scan due tasks and send reminders.

        Ticks never overlap: if the previous one still holds the lock this
        call returns immediately with ``ran=False``.
        """
        if not self._tick_lock.acquire(blocking=False):
            TICKS_SKIPPED.inc()
            logger.warning("Previous reminder tick still running, skipping this one")
            return TickResult(ran=False)
        try:
            return self._run_tick()
        finally:
            self._tick_lock.release()

    def _run_tick(self) -> TickResult:
        result = TickResult()
        now = self.clock()
        db = self.session_factory()
        try:
            try:
                due = self._snapshot(db, now)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to load tasks due for reminders: {e}")
                return result

            result.scanned = len(due)
            if not due:
                logger.debug("No tasks due for reminders")
                return result

            for task_dict in due:
                self._dispatch(db, task_dict, now, result)
        finally:
            db.close()

        logger.info(
            f"✅ Deadline check complete: {result.scanned} scanned, {result.dispatched} sent, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _snapshot(self, db: Session, now: datetime) -> List[dict]:
        return [
            {
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "priority": task.priority.value,
                "deadline": task.deadline,
                "email": task.owner.email,
            }
            for task in tasks_due_for_reminder(db, now)
        ]

    def _dispatch(self, db: Session, task_dict: dict, now: datetime, result: TickResult) -> None:
        task_id = task_dict["id"]
        deadline = task_dict["deadline"]

        try:
            if dispatch_recorded(db, task_id, deadline):
                result.skipped += 1
                return
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Task {task_id}: could not check dispatch record: {e}")
            result.failed += 1
            return

        try:
            response, status_code = self.send(task_dict["email"], task_dict, now)
        except Exception as e:
            REMINDER_FAILURES.inc()
            logger.error(f"❌ Error sending reminder for task {task_id}: {e}")
            result.failed += 1
            return

        if not is_delivered(status_code):
            REMINDER_FAILURES.inc()
            logger.error(f"❌ Failed to send reminder for task {task_id}: {response}")
            result.failed += 1
            return

        db.add(ReminderDispatch(task_id=task_id, deadline=deadline, dispatched_at=now))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Task {task_id}: reminder for this deadline already recorded")
            result.skipped += 1
            return
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Task {task_id}: reminder sent but record not saved: {e}")
            result.failed += 1
            return

        REMINDERS_DISPATCHED.inc()
        result.dispatched += 1
        logger.info(f"✅ Sent reminder for task {task_id} to {task_dict['email']}")

    # -----------------------------------------------------
    # lifecycle
    # -----------------------------------------------------
    def _add_job(self, scheduler) -> None:
        scheduler.add_job(
            self.check_deadlines,
            'interval',
            seconds=self.interval_seconds,
            id=REMINDER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=SCHEDULER_MISFIRE_GRACE,
        )

    def start(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = BackgroundScheduler(timezone=self.timezone)
        self._add_job(self._scheduler)
        self._scheduler.start()
        logger.info(f"🚀 Reminder scheduler started (every {self.interval_seconds}s)")

    def run_forever(self) -> None:
        scheduler = BlockingScheduler(timezone=self.timezone)
        self._add_job(scheduler)
        logger.info(f"🚀 Reminder worker running (every {self.interval_seconds}s)")
        scheduler.start()

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("🛑 Reminder scheduler stopped")
        self._scheduler = None


# Global scheduler instance
reminder_scheduler = ReminderScheduler()


def start_scheduler():
    reminder_scheduler.start()


def stop_scheduler():
    reminder_scheduler.stop()

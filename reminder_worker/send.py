import logging
from datetime import datetime
from typing import Mapping, Tuple
import pytz
from server.mailer import send_email
from .scheduler_config import SCHEDULER_TIMEZONE

logger = logging.getLogger(__name__)


def format_deadline(deadline: datetime, zone: str = SCHEDULER_TIMEZONE) -> str:
    """Render a naive-UTC deadline in the display zone."""
    local = pytz.utc.localize(deadline).astimezone(pytz.timezone(zone))
    return local.strftime("%Y-%m-%d %H:%M %Z")


def build_reminder_message(task_dict: dict, now: datetime) -> Tuple[str, str]:
    deadline = task_dict["deadline"]
    overdue = now >= deadline

    if overdue:
        subject = f"Overdue: {task_dict.get('title', 'Untitled')}"
        message = "⏰ This task has passed its deadline.\n\n"
    else:
        minutes_left = int((deadline - now).total_seconds() // 60)
        subject = f"Reminder: {task_dict.get('title', 'Untitled')} is due soon"
        message = f"⏰ This task is due in {minutes_left} minutes.\n\n"

    message += f"Title: {task_dict.get('title', 'N/A')}\n"
    if task_dict.get('description'):
        message += f"Description: {task_dict['description']}\n"
    message += f"Priority: {task_dict.get('priority', 'medium').upper()}\n"
    message += f"Deadline: {format_deadline(deadline)}\n"
    message += f"\nTask ID: #{task_dict.get('id', 'N/A')}"
    return subject, message


def send_deadline_reminder(email: str, task_dict: dict, now: datetime) -> Tuple[Mapping, int]:
    """
    Sends the deadline reminder email for one task.
    """
    subject, message = build_reminder_message(task_dict, now)
    return send_email(email, subject, message)

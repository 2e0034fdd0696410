"""
Scheduler Configuration for Deadline Reminders

Defines the scan interval and scheduler settings.
"""
from server.config import config

# How often the scheduler checks for tasks (in seconds)
SCHEDULER_CHECK_INTERVAL = config.REMINDER_SCAN_INTERVAL_SECONDS

# Zone used for the scheduler clock and for deadlines shown in messages
SCHEDULER_TIMEZONE = config.REMINDER_TIMEZONE

# A late tick may still run if it is at most this many seconds behind
SCHEDULER_MISFIRE_GRACE = 30

REMINDER_JOB_ID = "deadline_reminder_job"

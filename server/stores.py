from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session, joinedload
from server.models import MAX_REMINDER_MINUTES, User, Task, ReminderDispatch


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()

# =========================================================
# CREDENTIAL STORE
# =========================================================
def get_user_by_email(db: Session, email: str, for_update: bool = False) -> Optional[User]:
    query = db.query(User).filter(User.email == normalize_email(email))
    if for_update:
        query = query.with_for_update()
    return query.first()

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

# =========================================================
# TASK STORE
# =========================================================
def get_owned_task(db: Session, owner_id: int, task_id: int) -> Optional[Task]:
    return db.query(Task).filter(Task.id == task_id, Task.owner_id == owner_id).first()

def tasks_due_for_reminder(db: Session, now: datetime) -> List[Task]:
    """Open tasks inside their reminder window with no dispatch for the current deadline.

    Overdue tasks stay eligible until a reminder for their deadline is recorded.
    """
    # The tasks table CHECK caps reminder_minutes, so no lead reaches past this
    horizon = now + timedelta(minutes=MAX_REMINDER_MINUTES)
    candidates = (
        db.query(Task)
        .options(joinedload(Task.owner))
        .outerjoin(
            ReminderDispatch,
            (ReminderDispatch.task_id == Task.id) & (ReminderDispatch.deadline == Task.deadline),
        )
        .filter(
            Task.completed.is_(False),
            Task.deadline <= horizon,
            ReminderDispatch.id.is_(None),
        )
        .order_by(Task.deadline.asc())
        .all()
    )
    return [
        task for task in candidates
        if now >= task.deadline - timedelta(minutes=task.reminder_minutes or 0)
    ]

def dispatch_recorded(db: Session, task_id: int, deadline: datetime) -> bool:
    return db.query(ReminderDispatch.id).filter(
        ReminderDispatch.task_id == task_id,
        ReminderDispatch.deadline == deadline,
    ).first() is not None

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, ForeignKey,
    Enum as SQLEnum, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from server.database import Base
from server.enums import TaskPriority, OtpPurpose, AccountState

# =========================================================
# DATABASE MODELS
# =========================================================
# Upper bound on reminder lead time (one week)
MAX_REMINDER_MINUTES = 7 * 24 * 60


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(Text, nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    profile_picture = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    otp_challenges = relationship("OtpChallenge", back_populates="user", cascade="all, delete-orphan")
    reset_grants = relationship("ResetGrant", back_populates="user", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="owner", cascade="all, delete-orphan")

    @property
    def state(self) -> AccountState:
        return AccountState.verified if self.is_verified else AccountState.pending_verification


class OtpChallenge(Base):
    """One row per (user, purpose). A challenge is pending while ``code`` is set."""
    __tablename__ = "otp_challenges"
    __table_args__ = (
        UniqueConstraint("user_id", "purpose", name="uq_otp_challenge_user_purpose"),
        CheckConstraint(
            "(code IS NULL AND expires_at IS NULL) OR (code IS NOT NULL AND expires_at IS NOT NULL)",
            name="ck_otp_challenge_code_expiry_pair",
        ),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(SQLEnum(OtpPurpose), nullable=False)
    code = Column(String(6))
    expires_at = Column(DateTime)
    last_issued_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime)

    user = relationship("User", back_populates="otp_challenges")


class ResetGrant(Base):
    __tablename__ = "reset_grants"
    id = Column(Integer, primary_key=True)
    jti = Column(String(64), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime)

    user = relationship("User", back_populates="reset_grants")


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            f"reminder_minutes >= 0 AND reminder_minutes <= {MAX_REMINDER_MINUTES}",
            name="ck_task_reminder_minutes_range",
        ),
        Index("ix_tasks_open_deadline", "completed", "deadline"),
    )
    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    start_date = Column(Date)
    start_time = Column(String(5))
    deadline = Column(DateTime, nullable=False)
    reminder_minutes = Column(Integer, nullable=False, default=10)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.medium)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="tasks")
    dispatches = relationship("ReminderDispatch", back_populates="task", cascade="all, delete-orphan")


class ReminderDispatch(Base):
    """Marks that a reminder went out for a task at a given deadline value."""
    __tablename__ = "reminder_dispatches"
    __table_args__ = (
        UniqueConstraint("task_id", "deadline", name="uq_reminder_dispatch_task_deadline"),
    )
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    deadline = Column(DateTime, nullable=False)
    dispatched_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    task = relationship("Task", back_populates="dispatches")

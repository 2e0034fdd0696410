"""
One-time passcode engine.

Challenges live in ``otp_challenges``, one row per (user, purpose). A row is
either empty (no pending code) or pending with both ``code`` and
``expires_at`` set; ``PendingChallenge`` is the Python view of the second
case. Issuing overwrites the row, so at most one code per (user, purpose) can
ever verify.

The engine flushes but never commits: the caller owns the transaction and
rolls it back when an operation raises.
"""
import hmac
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from prometheus_client import Counter
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from server.config import config
from server.enums import OtpPurpose
from server.errors import CooldownActive, DeliveryFailed, Expired, Mismatch, NotFound
from server.mailer import Deliver, format_otp_message, is_delivered, send_email
from server.models import OtpChallenge, User

logger = logging.getLogger(__name__)

OTP_LENGTH = 6

OTP_ISSUED = Counter(
    "otp_issued_total",
    "OTP codes issued and delivered",
    ["purpose"]
)

OTP_VERIFICATIONS = Counter(
    "otp_verifications_total",
    "OTP verification attempts",
    ["purpose", "outcome"]
)


def generate_otp() -> str:
    """Uniformly random 6-digit code, leading zeros allowed."""
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


@dataclass(frozen=True)
class PendingChallenge:
    code: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class OtpStatus:
    exists: bool
    expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None

    def seconds_remaining(self, now: datetime) -> int:
        if not self.exists or self.expires_at is None:
            return 0
        return max(math.ceil((self.expires_at - now).total_seconds()), 0)


def pending_challenge(row: Optional[OtpChallenge]) -> Optional[PendingChallenge]:
    if row is None or row.code is None:
        return None
    return PendingChallenge(code=row.code, issued_at=row.last_issued_at, expires_at=row.expires_at)


def _seconds_left(last_issued_at: datetime, cooldown: Optional[timedelta], now: datetime) -> int:
    if not cooldown:
        return 0
    return max(0, math.ceil((last_issued_at + cooldown - now).total_seconds()))


def default_ttls() -> Dict[OtpPurpose, timedelta]:
    return {
        OtpPurpose.signup: config.otp_ttl_signup,
        OtpPurpose.password_reset: config.otp_ttl_reset,
    }


class OtpEngine:
    def __init__(
        self,
        db: Session,
        deliver: Deliver = send_email,
        clock: Callable[[], datetime] = datetime.utcnow,
        ttls: Optional[Dict[OtpPurpose, timedelta]] = None,
    ) -> None:
        self.db = db
        self.deliver = deliver
        self.clock = clock
        self.ttls = ttls or default_ttls()

    def _load(self, user: User, purpose: OtpPurpose) -> Optional[OtpChallenge]:
        return (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.user_id == user.id, OtpChallenge.purpose == purpose)
            .with_for_update()
            .first()
        )

    def issue(self, user: User, purpose: OtpPurpose, cooldown: Optional[timedelta] = None) -> PendingChallenge:
        """Generate, store and deliver a fresh code, replacing any pending one.

        With ``cooldown`` set, a second issue for the same (user, purpose)
        inside the window raises ``CooldownActive``. The check and the write
        are one compare-and-set on ``last_issued_at``, so two racing issues
        cannot both pass it.
        """
        row = self._load(user, purpose)
        now = self.clock()

        if row is not None and cooldown:
            remaining = _seconds_left(row.last_issued_at, cooldown, now)
            if remaining > 0:
                raise CooldownActive(remaining)

        ttl = self.ttls[purpose]
        challenge = PendingChallenge(code=generate_otp(), issued_at=now, expires_at=now + ttl)

        if row is None:
            self.db.add(OtpChallenge(
                user_id=user.id,
                purpose=purpose,
                code=challenge.code,
                expires_at=challenge.expires_at,
                last_issued_at=now,
            ))
            try:
                self.db.flush()
            except IntegrityError:
                # A concurrent issue created the row first. The failed flush leaves
                # the session unreadable, so report the whole window.
                raise CooldownActive(_seconds_left(now, cooldown, now))
        else:
            result = self.db.execute(
                update(OtpChallenge)
                .where(OtpChallenge.id == row.id, OtpChallenge.last_issued_at == row.last_issued_at)
                .values(
                    code=challenge.code,
                    expires_at=challenge.expires_at,
                    last_issued_at=now,
                    consumed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                winner_issued_at = self.db.execute(
                    select(OtpChallenge.last_issued_at).where(OtpChallenge.id == row.id)
                ).scalar()
                raise CooldownActive(_seconds_left(winner_issued_at or now, cooldown, now))
            self.db.expire(row)

        subject, body = format_otp_message(purpose, challenge.code, int(ttl.total_seconds() // 60))
        try:
            _, status_code = self.deliver(user.email, subject, body)
        except Exception as e:
            logger.error(f"OTP delivery raised for {user.email} ({purpose.value}): {e}")
            raise DeliveryFailed() from e
        if not is_delivered(status_code):
            logger.error(f"OTP delivery failed for {user.email} ({purpose.value}): status {status_code}")
            raise DeliveryFailed()

        OTP_ISSUED.labels(purpose=purpose.value).inc()
        logger.info(f"Issued {purpose.value} OTP for {user.email}, expires at {challenge.expires_at.isoformat()}")
        return challenge

    def verify(self, user: User, purpose: OtpPurpose, candidate_code: str) -> None:
        """Consume the pending code if ``candidate_code`` matches it.

        Raises ``NotFound`` when nothing is pending (including a replay of a
        consumed code), ``Expired`` after clearing a stale code, and
        ``Mismatch`` on a wrong code. A mismatch leaves the expiry untouched.
        """
        row = self._load(user, purpose)
        pending = pending_challenge(row)
        if pending is None:
            OTP_VERIFICATIONS.labels(purpose=purpose.value, outcome="not_found").inc()
            raise NotFound()

        now = self.clock()
        if now > pending.expires_at:
            row.code = None
            row.expires_at = None
            self.db.flush()
            OTP_VERIFICATIONS.labels(purpose=purpose.value, outcome="expired").inc()
            raise Expired()

        candidate = (candidate_code or "").strip()
        if not hmac.compare_digest(candidate.encode(), pending.code.encode()):
            OTP_VERIFICATIONS.labels(purpose=purpose.value, outcome="mismatch").inc()
            raise Mismatch()

        row.code = None
        row.expires_at = None
        row.consumed_at = now
        self.db.flush()
        OTP_VERIFICATIONS.labels(purpose=purpose.value, outcome="success").inc()

    def status(self, user: Optional[User], purpose: OtpPurpose) -> OtpStatus:
        if user is None:
            return OtpStatus(exists=False)
        row = (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.user_id == user.id, OtpChallenge.purpose == purpose)
            .first()
        )
        pending = pending_challenge(row)
        if pending is None or self.clock() > pending.expires_at:
            return OtpStatus(exists=False)
        return OtpStatus(exists=True, expires_at=pending.expires_at, issued_at=pending.issued_at)

    def invalidate(self, user: User, purpose: OtpPurpose) -> None:
        row = self._load(user, purpose)
        if row is not None and row.code is not None:
            row.code = None
            row.expires_at = None
            self.db.flush()

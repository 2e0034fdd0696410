"""
Auth state machine.

Flows:

    signup:   (new) -> pending_verification --verify otp--> verified (+ session)
    login:    credentials --hash compare, verified only--> session
    reset:    forgot-password -> pending reset otp --verify--> grant
              --set new password (grant consumed)--> password changed

Every transition checks its preconditions before mutating anything and runs
in a single database transaction: a failure anywhere rolls the whole
transition back. The one exception is an expired OTP, whose clearing is kept.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from server.config import Config, config as default_config
from server.enums import OtpPurpose
from server.errors import (
    AlreadyExists, Expired, GrantInvalid, InvalidCredentials,
    InvalidToken, NotFound, PersistenceUnavailable, TokenExpired, WeakPassword
)
from server.mailer import Deliver, send_email
from server.models import ResetGrant, User
from server.otp import OtpEngine, OtpStatus
from server.security_utils import (
    create_access_token, create_reset_grant_token, decode_reset_grant_token,
    dummy_verify, hash_password, verify_password
)
from server.stores import get_user_by_email, normalize_email

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a reset code has been sent"


@dataclass
class SignupResult:
    message: str
    otp_expires_at: datetime


@dataclass
class AuthResult:
    access_token: str
    user: User


@dataclass
class ResetGrantResult:
    reset_token: str
    expires_at: datetime


class AuthService:
    def __init__(
        self,
        db: Session,
        deliver: Deliver = send_email,
        clock: Callable[[], datetime] = datetime.utcnow,
        settings: Config = default_config,
    ) -> None:
        self.db = db
        self.clock = clock
        self.settings = settings
        self.otp = OtpEngine(
            db,
            deliver=deliver,
            clock=clock,
            ttls={
                OtpPurpose.signup: settings.otp_ttl_signup,
                OtpPurpose.password_reset: settings.otp_ttl_reset,
            },
        )

    # -----------------------------------------------------
    # transaction handling
    # -----------------------------------------------------
    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation}: commit failed: {e}")
            raise PersistenceUnavailable() from e

    @contextmanager
    def _transition(self, operation: str):
        try:
            yield
        except Expired:
            self._commit(operation)
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation}: persistence failure: {e}")
            raise PersistenceUnavailable() from e
        except Exception:
            self.db.rollback()
            raise
        self._commit(operation)

    def _check_password_policy(self, password: str) -> None:
        if len(password or "") < self.settings.MIN_PASSWORD_LENGTH:
            raise WeakPassword(self.settings.MIN_PASSWORD_LENGTH)

    # -----------------------------------------------------
    # signup
    # -----------------------------------------------------
    def signup(self, name: str, email: str, password: str) -> SignupResult:
        email = normalize_email(email)
        self._check_password_policy(password)

        with self._transition("signup"):
            user = get_user_by_email(self.db, email, for_update=True)
            if user is not None and user.is_verified:
                raise AlreadyExists()

            if user is None:
                user = User(name=name.strip(), email=email, password_hash=hash_password(password), is_verified=False)
                self.db.add(user)
                try:
                    self.db.flush()
                except IntegrityError:
                    raise AlreadyExists()
            else:
                # Unverified account: the latest signup details win
                user.name = name.strip()
                user.password_hash = hash_password(password)

            challenge = self.otp.issue(user, OtpPurpose.signup, cooldown=self.settings.otp_resend_cooldown)

        logger.info(f"Signup pending verification for {email}")
        return SignupResult(
            message="Verification code sent to your email",
            otp_expires_at=challenge.expires_at,
        )

    def verify_signup(self, email: str, code: str) -> AuthResult:
        with self._transition("verify_signup"):
            user = get_user_by_email(self.db, email, for_update=True)
            if user is None:
                raise NotFound()
            self.otp.verify(user, OtpPurpose.signup, code)
            user.is_verified = True
            token = create_access_token(user.id, now=self.clock(), expires_delta=self.settings.session_ttl)

        logger.info(f"Account verified for {user.email}")
        return AuthResult(access_token=token, user=user)

    def resend_otp(self, email: str, purpose: OtpPurpose = OtpPurpose.signup) -> datetime:
        """Unknown emails get the same expiry a real issue would, and no mail."""
        with self._transition("resend_otp"):
            user = get_user_by_email(self.db, email, for_update=True)
            if user is None:
                logger.info(f"OTP resend ({purpose.value}) requested for unknown email")
                return self.clock() + self.otp.ttls[purpose]
            if purpose == OtpPurpose.signup and user.is_verified:
                raise AlreadyExists("Account is already verified")
            challenge = self.otp.issue(user, purpose, cooldown=self.settings.otp_resend_cooldown)
        return challenge.expires_at

    # -----------------------------------------------------
    # login
    # -----------------------------------------------------
    def login(self, email: str, password: str) -> AuthResult:
        """Wrong password, unknown email and unverified account all look alike."""
        with self._transition("login"):
            user = get_user_by_email(self.db, email)
            if user is None:
                dummy_verify()
                raise InvalidCredentials()
            if not verify_password(password, user.password_hash):
                raise InvalidCredentials()
            if not user.is_verified:
                logger.info(f"Login refused for unverified account {user.email}")
                raise InvalidCredentials()
            token = create_access_token(user.id, now=self.clock(), expires_delta=self.settings.session_ttl)
        return AuthResult(access_token=token, user=user)

    # -----------------------------------------------------
    # password reset
    # -----------------------------------------------------
    def forgot_password(self, email: str) -> str:
        with self._transition("forgot_password"):
            user = get_user_by_email(self.db, email, for_update=True)
            if user is None:
                logger.info("Password reset requested for unknown email")
                return RESET_REQUESTED_MESSAGE
            self.otp.issue(user, OtpPurpose.password_reset, cooldown=self.settings.otp_resend_cooldown)
        return RESET_REQUESTED_MESSAGE

    def verify_reset_otp(self, email: str, code: str) -> ResetGrantResult:
        with self._transition("verify_reset_otp"):
            user = get_user_by_email(self.db, email, for_update=True)
            if user is None:
                raise NotFound()
            self.otp.verify(user, OtpPurpose.password_reset, code)

            now = self.clock()
            # Only the newest grant may be used
            self.db.query(ResetGrant).filter(
                ResetGrant.user_id == user.id,
                ResetGrant.consumed_at.is_(None),
            ).update({ResetGrant.consumed_at: now}, synchronize_session=False)

            expires_at = now + self.settings.reset_grant_ttl
            token, jti = create_reset_grant_token(user.id, user.email, now, expires_at)
            self.db.add(ResetGrant(jti=jti, user_id=user.id, issued_at=now, expires_at=expires_at))

        logger.info(f"Password reset grant issued for {user.email}")
        return ResetGrantResult(reset_token=token, expires_at=expires_at)

    def reset_password(self, email: str, reset_token: str, new_password: str) -> str:
        with self._transition("reset_password"):
            now = self.clock()
            try:
                claims = decode_reset_grant_token(reset_token, now=now)
            except (InvalidToken, TokenExpired):
                raise GrantInvalid()

            user = get_user_by_email(self.db, email, for_update=True)
            if user is None or claims.get("sub") != str(user.id) or claims.get("email") != user.email:
                raise GrantInvalid()

            grant = (
                self.db.query(ResetGrant)
                .filter(ResetGrant.jti == claims.get("jti"))
                .with_for_update()
                .first()
            )
            if grant is None or grant.user_id != user.id or grant.consumed_at is not None or now >= grant.expires_at:
                raise GrantInvalid()

            self._check_password_policy(new_password)

            user.password_hash = hash_password(new_password)
            grant.consumed_at = now
            self.otp.invalidate(user, OtpPurpose.password_reset)

        logger.info(f"Password changed for {user.email}")
        return "Password has been reset successfully"

    # -----------------------------------------------------
    # status
    # -----------------------------------------------------
    def check_otp_status(self, email: str, purpose: OtpPurpose) -> OtpStatus:
        with self._transition("check_otp_status"):
            user = get_user_by_email(self.db, email)
            status = self.otp.status(user, purpose)
        return status

    # -----------------------------------------------------
    # profile
    # -----------------------------------------------------
    def update_profile(self, user: User, name: Optional[str] = None, profile_picture: Optional[str] = None) -> User:
        with self._transition("update_profile"):
            if name is not None:
                user.name = name.strip()
            if profile_picture is not None:
                user.profile_picture = profile_picture or None
            user.updated_at = self.clock()
        self.db.refresh(user)
        return user

    def delete_account(self, user: User) -> None:
        email = user.email
        with self._transition("delete_account"):
            self.db.delete(user)
        logger.info(f"Account deleted for {email}")

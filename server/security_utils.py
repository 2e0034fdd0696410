import calendar
import secrets
import jwt
from datetime import datetime, timedelta
from typing import Optional, Tuple
from passlib.context import CryptContext
from server.config import config
from server.enums import TokenType
from server.errors import InvalidToken, TokenExpired

# =========================================================
# PASSWORD HASHING
# =========================================================
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=config.BCRYPT_ROUNDS,
)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def dummy_verify() -> None:
    """Spend the same time as a real verify when there is no hash to check."""
    pwd_context.dummy_verify()

# =========================================================
# SIGNED TOKENS
# =========================================================
def _timestamp(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())

def _encode(claims: dict) -> str:
    return jwt.encode(claims, config.SECRET_KEY, algorithm=config.ALGORITHM)

def _decode(token: str, expected_type: TokenType, now: datetime) -> dict:
    try:
        payload = jwt.decode(
            token,
            config.SECRET_KEY,
            algorithms=[config.ALGORITHM],
            options={"verify_signature": True, "verify_exp": False, "verify_iat": False, "require": ["sub", "exp", "typ"]},
        )
    except jwt.InvalidTokenError as e:
        raise InvalidToken() from e

    if payload.get("typ") != expected_type.value:
        raise InvalidToken("Invalid token: wrong token type")
    if _timestamp(now) >= int(payload["exp"]):
        raise TokenExpired()
    return payload

# =========================================================
# SESSION ISSUER
# =========================================================
def create_access_token(subject: int, now: Optional[datetime] = None, expires_delta: Optional[timedelta] = None) -> str:
    issued_at = now or datetime.utcnow()
    expire = issued_at + (expires_delta or config.session_ttl)
    claims = {
        "sub": str(subject),
        "typ": TokenType.session.value,
        "iat": _timestamp(issued_at),
        "exp": _timestamp(expire),
    }
    return _encode(claims)

def decode_access_token(token: str, now: Optional[datetime] = None) -> int:
    """Return the user id a session token was minted for.

    Raises ``InvalidToken`` on a bad signature, wrong type or malformed
    subject, and ``TokenExpired`` once the lifetime has elapsed.
    """
    payload = _decode(token, TokenType.session, now or datetime.utcnow())
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidToken("Invalid token: subject is not an integer id")

# =========================================================
# PASSWORD RESET GRANTS
# =========================================================
def create_reset_grant_token(subject: int, email: str, issued_at: datetime, expires_at: datetime) -> Tuple[str, str]:
    jti = secrets.token_urlsafe(24)
    claims = {
        "sub": str(subject),
        "email": email,
        "typ": TokenType.password_reset.value,
        "jti": jti,
        "iat": _timestamp(issued_at),
        "exp": _timestamp(expires_at),
    }
    return _encode(claims), jti

def decode_reset_grant_token(token: str, now: Optional[datetime] = None) -> dict:
    return _decode(token, TokenType.password_reset, now or datetime.utcnow())

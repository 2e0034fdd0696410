import logging
from datetime import datetime
from typing import Callable
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from server.auth_service import AuthService
from server.database import SessionLocal
from server.errors import InvalidToken, TokenExpired
from server.mailer import Deliver, send_email
from server.models import User
from server.security_utils import decode_access_token
from server.stores import get_user

logger = logging.getLogger(__name__)

security = HTTPBearer()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_clock() -> Callable[[], datetime]:
    return datetime.utcnow

def get_deliver() -> Deliver:
    return send_email

def get_auth_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    deliver: Deliver = Depends(get_deliver),
) -> AuthService:
    return AuthService(db, deliver=deliver, clock=clock)

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> User:
    try:
        user_id = decode_access_token(credentials.credentials, now=clock())
    except TokenExpired:
        raise HTTPException(status_code=401, detail="Token has expired")
    except InvalidToken as e:
        logger.debug(f"Rejected session token: {e.message}")
        raise HTTPException(status_code=401, detail="Invalid token")

    # Tokens of deleted accounts stop resolving here
    user = get_user(db, user_id)
    if user is None:
        logger.debug(f"No user found with id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    return user

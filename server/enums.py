import enum
# =========================================================
# ENUMS
# =========================================================
class TaskPriority(str, enum.Enum):
    high = "high"
    medium = "medium"
    low = "low"

class OtpPurpose(str, enum.Enum):
    signup = "signup"
    password_reset = "password_reset"

class AccountState(str, enum.Enum):
    pending_verification = "pending_verification"
    verified = "verified"

class TokenType(str, enum.Enum):
    session = "session"
    password_reset = "password_reset"

from app.auth.token import TokenPayload, get_current_user, verify_token
from app.auth.dependencies import CurrentUser, Publisher, RequestDB, UserStorage

__all__ = [
    "TokenPayload", "get_current_user", "verify_token",
    "CurrentUser", "Publisher", "RequestDB", "UserStorage",
]

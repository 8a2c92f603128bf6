# inventory_service/auth.py

"""
Username/password check against the configured admin credentials.
"""

import hmac
from typing import Optional

from . import config
from .schemas import UserOut


def authenticate(username: str, password: str) -> Optional[UserOut]:
    """Return the user for a matching credential pair, otherwise None."""
    user_ok = hmac.compare_digest(username.encode(), config.ADMIN_USERNAME.encode())
    password_ok = hmac.compare_digest(password.encode(), config.ADMIN_PASSWORD.encode())
    if user_ok and password_ok:
        return UserOut(id=1, username=config.ADMIN_USERNAME, role="admin")
    return None

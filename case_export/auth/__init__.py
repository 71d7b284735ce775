"""
Auth Module: Browser Login and Token Capture

Components:
- AuthToken / Credentials: captured bearer token and login credentials
- AuthSession: drives the login page and intercepts the token
"""

from .token import AuthToken, Credentials
from .session import AuthSession

__all__ = [
    "AuthToken",
    "Credentials",
    "AuthSession",
]

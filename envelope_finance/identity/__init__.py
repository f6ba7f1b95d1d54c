"""Identity package."""

from envelope_finance.identity.session import (
    IdentityError,
    NotSignedIn,
    Session,
    SessionManager,
    SignInMethod,
    account_id_for_token,
    ensure_active,
)

__all__ = [
    "IdentityError",
    "NotSignedIn",
    "Session",
    "SessionManager",
    "SignInMethod",
    "account_id_for_token",
    "ensure_active",
]

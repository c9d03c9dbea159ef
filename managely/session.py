"""Identity/session provider consulted before every store write."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from managely import google_credentials
from managely.settings import AUTH_LOCAL, AUTH_OAUTH, AUTH_SERVICE_ACCOUNT, ManagelySettings

logger = logging.getLogger(__name__)

READ_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
WRITE_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


@dataclass(frozen=True)
class SessionAccess:
    """Current user's capabilities as seen by the repositories."""

    signed_in: bool
    can_read: bool
    can_write: bool

    @classmethod
    def signed_out(cls) -> "SessionAccess":
        return cls(signed_in=False, can_read=False, can_write=False)

    @classmethod
    def read_only(cls) -> "SessionAccess":
        return cls(signed_in=True, can_read=True, can_write=False)

    @classmethod
    def full(cls) -> "SessionAccess":
        return cls(signed_in=True, can_read=True, can_write=True)


def access_from_scopes(scopes: Optional[Iterable[str]]) -> SessionAccess:
    """Derive access flags from the scopes granted to a credential."""

    granted = set(scopes or ())
    if WRITE_SCOPE in granted:
        return SessionAccess.full()
    if READ_SCOPE in granted:
        return SessionAccess.read_only()
    return SessionAccess(signed_in=bool(granted), can_read=False, can_write=False)


@dataclass
class Session:
    access: SessionAccess
    credentials: object = None


def requested_scopes(settings: ManagelySettings) -> Sequence[str]:
    return (READ_SCOPE,) if settings.read_only else (WRITE_SCOPE,)


def open_session(settings: ManagelySettings) -> Session:
    """Authenticate according to ``settings.auth_mode``."""

    if settings.auth_mode == AUTH_LOCAL:
        access = SessionAccess.read_only() if settings.read_only else SessionAccess.full()
        logger.info("Local workbook session (write=%s)", access.can_write)
        return Session(access=access)

    scopes = requested_scopes(settings)
    if settings.auth_mode == AUTH_SERVICE_ACCOUNT:
        credentials = google_credentials.load_service_account_credentials(
            Path(settings.credential_path), scopes
        )
        granted = scopes
    elif settings.auth_mode == AUTH_OAUTH:
        credentials = google_credentials.load_user_credentials(
            settings.client_secret_path, settings.token_path, scopes
        )
        granted = getattr(credentials, "scopes", None) or scopes
    else:
        raise ValueError(f"Unsupported auth mode: {settings.auth_mode}")

    access = access_from_scopes(granted)
    logger.info("Signed in via %s (read=%s, write=%s)", settings.auth_mode, access.can_read, access.can_write)
    return Session(access=access, credentials=credentials)


__all__ = [
    "READ_SCOPE",
    "WRITE_SCOPE",
    "Session",
    "SessionAccess",
    "access_from_scopes",
    "open_session",
    "requested_scopes",
]

"""Helpers for loading Google credentials used by the Sheets store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

from google.auth.transport.requests import Request
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account
from google_auth_oauthlib.flow import InstalledAppFlow

logger = logging.getLogger(__name__)

__all__ = [
    "CredentialsFileInvalidError",
    "REQUIRED_FIELDS",
    "ensure_service_account_file",
    "load_service_account_credentials",
    "load_service_account_data",
    "load_user_credentials",
]


class CredentialsFileInvalidError(Exception):
    """Raised when a credential JSON file is missing or incomplete."""


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _load_json(path: Path) -> Mapping[str, object]:
    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsFileInvalidError(f"Unable to read JSON file: {exc}") from exc

    payload_text = raw.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsFileInvalidError("Service account JSON file is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsFileInvalidError(f"JSON parse error: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsFileInvalidError("Service account JSON must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsFileInvalidError(f"JSON missing fields: {ordered}")

    private_key = str(data["private_key"])
    data["private_key"] = _normalise_private_key(private_key)
    return data


def load_service_account_data(path: Path) -> Dict[str, object]:
    """Return validated service account data without modifying ``path``."""

    return _validate_payload(_load_json(path))


def ensure_service_account_file(path: Path) -> Dict[str, object]:
    """Validate ``path`` and persist a normalised copy of the credentials."""

    payload = load_service_account_data(path)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
    return payload


def load_service_account_credentials(path: Path, scopes: Sequence[str]):
    """Return service account credentials restricted to ``scopes``."""

    payload = ensure_service_account_file(path)
    try:
        return service_account.Credentials.from_service_account_info(payload, scopes=list(scopes))
    except ValueError as exc:
        raise CredentialsFileInvalidError(str(exc)) from exc


def load_user_credentials(secret_path: str, token_path: str, scopes: Sequence[str]):
    """Return OAuth user credentials, running the desktop consent flow if needed.

    A cached token at ``token_path`` is reused and refreshed when possible.
    The granted scopes may be narrower than ``scopes`` when the user declines
    write access; callers derive their access level from ``credentials.scopes``.
    """

    credentials = None
    if token_path and os.path.exists(token_path):
        credentials = user_credentials.Credentials.from_authorized_user_file(token_path, list(scopes))

    if not credentials or not credentials.valid:
        if credentials and credentials.expired and credentials.refresh_token:
            logger.info("Refreshing cached OAuth token")
            credentials.refresh(Request())
        else:
            if not os.path.exists(secret_path):
                raise CredentialsFileInvalidError(f"Client secret file not found: {secret_path}")
            flow = InstalledAppFlow.from_client_secrets_file(secret_path, list(scopes))
            credentials = flow.run_local_server(port=0)
        if token_path:
            os.makedirs(os.path.dirname(token_path) or ".", exist_ok=True)
            with open(token_path, "w", encoding="utf-8") as handle:
                handle.write(credentials.to_json())

    return credentials

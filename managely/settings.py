"""Application configuration helpers for Managely."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping

from managely import app_paths


logger = logging.getLogger(__name__)


DEFAULT_SETTINGS_PATH = str(app_paths.APP_DIR / "settings.json")

AUTH_SERVICE_ACCOUNT = "service_account"
AUTH_OAUTH = "oauth"
AUTH_LOCAL = "local"
AUTH_MODES = (AUTH_SERVICE_ACCOUNT, AUTH_OAUTH, AUTH_LOCAL)

DEFAULT_SPREADSHEET_ID = str(app_paths.APP_DIR / "managely_workbook.json")
DEFAULT_CREDENTIALS_PATH = str(app_paths.TOKENS_DIR / "service_account.json")
DEFAULT_CLIENT_SECRET_PATH = str(app_paths.TOKENS_DIR / "client_secret.json")
DEFAULT_TOKEN_PATH = str(app_paths.TOKENS_DIR / "token.json")
DEFAULT_CACHE_TTL_SECONDS = 300

_ENV_OVERRIDES: Dict[str, str] = {
    "spreadsheet_id": "MANAGELY_SPREADSHEET_ID",
    "credential_path": "MANAGELY_CREDENTIALS_PATH",
    "integrity_key": "MANAGELY_INTEGRITY_KEY",
    "auth_mode": "MANAGELY_AUTH_MODE",
}


@dataclass
class ManagelySettings:
    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    auth_mode: str = AUTH_LOCAL
    credential_path: str = DEFAULT_CREDENTIALS_PATH
    client_secret_path: str = DEFAULT_CLIENT_SECRET_PATH
    token_path: str = DEFAULT_TOKEN_PATH
    read_only: bool = False
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    integrity_key: str = ""

    def to_json(self) -> Dict[str, object]:
        return {
            "spreadsheet_id": self.spreadsheet_id,
            "auth_mode": self.auth_mode,
            "credential_path": self.credential_path,
            "client_secret_path": self.client_secret_path,
            "token_path": self.token_path,
            "read_only": self.read_only,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "integrity_key": self.integrity_key,
        }


def _default_payload() -> Dict[str, object]:
    return ManagelySettings().to_json()


def _ensure_settings_file(path: str) -> Dict[str, object]:
    if not os.path.exists(path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        payload = _default_payload()
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        return payload
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed settings file %s", path)
        return _default_payload()
    return data


def _coerce(data: Mapping[str, object]) -> Dict[str, object]:
    merged: Dict[str, object] = _default_payload()
    for key, value in data.items():
        if key not in merged:
            continue
        if key == "read_only":
            merged[key] = value if isinstance(value, bool) else str(value).strip().lower() in {"1", "true", "yes"}
        elif key == "cache_ttl_seconds":
            try:
                merged[key] = max(0, int(value))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                pass
        elif key == "auth_mode":
            mode = str(value).strip().lower()
            if mode in AUTH_MODES:
                merged[key] = mode
            else:
                logger.warning("Unknown auth mode %r, keeping %s", value, merged[key])
        elif isinstance(value, str):
            merged[key] = value
    return merged


def _apply_environment(data: Dict[str, object]) -> Dict[str, object]:
    overrides = {key: os.getenv(env_var) for key, env_var in _ENV_OVERRIDES.items()}
    return _coerce({**data, **{key: value for key, value in overrides.items() if value}})


def load_settings(path: str = DEFAULT_SETTINGS_PATH) -> ManagelySettings:
    """Load settings from ``path``, creating the file with defaults if absent.

    Environment variables (``MANAGELY_SPREADSHEET_ID``,
    ``MANAGELY_CREDENTIALS_PATH``, ``MANAGELY_INTEGRITY_KEY``,
    ``MANAGELY_AUTH_MODE``) take precedence over the file.
    """

    data = _apply_environment(_coerce(_ensure_settings_file(path)))
    return ManagelySettings(
        spreadsheet_id=str(data["spreadsheet_id"]),
        auth_mode=str(data["auth_mode"]),
        credential_path=str(data["credential_path"]),
        client_secret_path=str(data["client_secret_path"]),
        token_path=str(data["token_path"]),
        read_only=bool(data["read_only"]),
        cache_ttl_seconds=int(data["cache_ttl_seconds"]),  # type: ignore[arg-type]
        integrity_key=str(data["integrity_key"]),
    )


def save_settings(settings: ManagelySettings, path: str = DEFAULT_SETTINGS_PATH) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, "w", encoding="utf-8") as handle:
        json.dump(settings.to_json(), handle, indent=2)


__all__ = [
    "AUTH_LOCAL",
    "AUTH_MODES",
    "AUTH_OAUTH",
    "AUTH_SERVICE_ACCOUNT",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_SETTINGS_PATH",
    "ManagelySettings",
    "load_settings",
    "save_settings",
]

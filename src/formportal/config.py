from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_ORG_NAME = "INTER-WORLD SHIPPING CORPORATION"
DEFAULT_ORG_ADDRESS = "5F W. Deepz Bldg., MH Del Pilar St., Ermita, Manila"
DEFAULT_ORG_PHONE = "Tel. No.: (02) 7090-3591"
DEFAULT_ORG_WEBSITE = "www.interworldships.com"
DEFAULT_REVISION_PREFIX = "ISC LH Rev.00"


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.storage_backend = os.getenv("STORAGE_BACKEND", "sqlite").lower()
        self.sqlite_path = Path(os.getenv("SQLITE_PATH", "./data/app.db"))
        self.json_path = Path(os.getenv("JSON_PATH", "./data/jsonstore.json"))
        self.auth_mode = os.getenv("AUTH_MODE", "none").lower()
        self.admin_users = {
            item.strip()
            for item in os.getenv("ADMIN_USERS", "").split(",")
            if item.strip()
        }
        self.webhook_url = os.getenv("WEBHOOK_URL", "").strip()
        self.org_name = os.getenv("ORG_NAME", DEFAULT_ORG_NAME)
        self.org_address = os.getenv("ORG_ADDRESS", DEFAULT_ORG_ADDRESS)
        self.org_phone = os.getenv("ORG_PHONE", DEFAULT_ORG_PHONE)
        self.org_website = os.getenv("ORG_WEBSITE", DEFAULT_ORG_WEBSITE)
        self.revision_prefix = os.getenv("REVISION_PREFIX", DEFAULT_REVISION_PREFIX)
        self.cas_retries = max(1, _int_env("CAS_RETRIES", 20))
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = _int_env("PORT", 8000)

    @property
    def org_lines(self) -> list[str]:
        return [
            line
            for line in (self.org_address, self.org_phone, self.org_website)
            if line
        ]


def ensure_dirs(settings: Settings) -> None:
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    settings.json_path.parent.mkdir(parents=True, exist_ok=True)

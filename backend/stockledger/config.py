# backend/stockledger/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Blob store used to sign waybill/photo attachments. Unset -> attachments
    # are listed but always reported as unavailable.
    ATTACHMENT_STORAGE_URL = os.environ.get("ATTACHMENT_STORAGE_URL")
    ATTACHMENT_STORAGE_KEY = os.environ.get("ATTACHMENT_STORAGE_KEY")
    ATTACHMENT_BUCKET = os.environ.get("ATTACHMENT_BUCKET", "waybills")
    ATTACHMENT_URL_TTL_SECONDS = int(os.environ.get("ATTACHMENT_URL_TTL_SECONDS", "3600"))
    ATTACHMENT_RESOLVE_TIMEOUT_SECONDS = float(os.environ.get("ATTACHMENT_RESOLVE_TIMEOUT_SECONDS", "5"))
    ATTACHMENT_MAX_WORKERS = int(os.environ.get("ATTACHMENT_MAX_WORKERS", "4"))

    # Role names understood by the default authorization collaborator
    APPROVER_ROLES = _csv(os.environ.get("APPROVER_ROLES", "admin,manager"))
    TENANT_WIDE_ROLES = _csv(os.environ.get("TENANT_WIDE_ROLES", "admin"))

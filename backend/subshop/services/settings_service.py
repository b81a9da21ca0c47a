# Overview: Service-layer operations for the single-row store settings.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationError
from ..models import StoreSettings

SETTINGS_FIELDS = {"upi_id", "qr_code_url", "telegram_link", "telegram_username", "contact_email", "contact_phone"}


def _get_or_create() -> StoreSettings:
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if settings is None:
        settings = StoreSettings(
            upi_id="",
            qr_code_url="",
            telegram_link="",
            telegram_username="",
            contact_email="",
            contact_phone="",
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def get_settings() -> StoreSettings:
    settings = _get_or_create()
    db.session.commit()
    return settings


def update_settings(data: dict) -> StoreSettings:
    """Patch known fields; unknown keys are ignored, values must be strings."""
    settings = _get_or_create()
    for key, value in (data or {}).items():
        if key not in SETTINGS_FIELDS:
            continue
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string", details={key: value})
        setattr(settings, key, value.strip())
    db.session.commit()
    return settings

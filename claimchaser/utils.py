"""Small time and phone helpers shared by services and the API."""

from __future__ import annotations

import re
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def normalize_phone(phone: str) -> str:
    """Coerce a phone number into E.164 (``+`` followed by digits)."""
    phone = phone.strip()
    if phone.startswith("+"):
        return phone
    return "+" + re.sub(r"\D", "", phone)


def phone_variants(phone: str) -> list[str]:
    """Stored provider numbers may or may not carry the leading ``+``."""
    phone = phone.strip()
    bare = phone.lstrip("+")
    return [phone] if phone == bare else [phone, bare]


def format_duration(seconds: float) -> str:
    """Render a duration as ``m:ss``."""
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"

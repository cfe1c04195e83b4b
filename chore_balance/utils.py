from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import uuid4

UTC = timezone.utc


def now_utc_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def ensure_date(value: str) -> str:
    date.fromisoformat(value)
    return value


def optional_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(ensure_date(value))


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"
